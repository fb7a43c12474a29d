import unittest

from jsstep.environment import UNINITIALIZED, EnvironmentArena
from jsstep.errors import JSReferenceError, JSSyntaxError, JSTypeError
from jsstep.hoisting import hoist_declarations, pattern_names, var_names
from jsstep.parser import parse
from jsstep.values import undefined


class TestEnvironment(unittest.TestCase):
    def setUp(self):
        self.arena = EnvironmentArena()
        self.global_env = self.arena.new_global()

    def test_lookup_walks_outward(self):
        self.global_env.create_mutable_binding("x", "let", 1.0)
        inner = self.global_env.extend("block").extend("block")
        self.assertEqual(inner.get("x"), 1.0)

    def test_shadowing(self):
        self.global_env.create_mutable_binding("x", "let", 1.0)
        block = self.global_env.extend("block")
        block.create_mutable_binding("x", "let", 2.0)
        self.assertEqual(block.get("x"), 2.0)
        self.assertEqual(self.global_env.get("x"), 1.0)

    def test_unbound_read_is_reference_error(self):
        with self.assertRaises(JSReferenceError) as cm:
            self.global_env.get("nope")
        self.assertEqual(cm.exception.message, "nope is not defined")

    def test_temporal_dead_zone(self):
        self.global_env.create_mutable_binding("C", "class", UNINITIALIZED)
        with self.assertRaises(JSReferenceError) as cm:
            self.global_env.get("C")
        self.assertIn("before initialization", cm.exception.message)
        self.assertIs(self.global_env.lookup("C"), undefined)

    def test_const_assignment_is_type_error(self):
        self.global_env.create_mutable_binding("k", "const", 1.0)
        with self.assertRaises(JSTypeError):
            self.global_env.set("k", 2.0)

    def test_sloppy_assignment_creates_global(self):
        fn_env = self.global_env.extend("function", "f")
        fn_env.set("leak", 2.0)
        self.assertFalse(fn_env.record.has_binding("leak"))
        self.assertEqual(self.global_env.record.bindings["leak"].kind, "var")

    def test_let_redeclaration_rejected(self):
        self.global_env.create_mutable_binding("x", "let", 1.0)
        with self.assertRaises(JSSyntaxError):
            self.global_env.create_mutable_binding("x", "let", 2.0)

    def test_var_redeclaration_allowed(self):
        self.global_env.create_mutable_binding("x", "var", 1.0)
        self.global_env.create_mutable_binding("x", "var", 2.0)
        self.assertEqual(self.global_env.get("x"), 2.0)

    def test_overwritten_builtin_becomes_var(self):
        self.global_env.create_mutable_binding("console", "builtin", "native")
        self.global_env.set("console", 1.0)
        self.assertEqual(self.global_env.record.bindings["console"].kind, "var")

    def test_var_scope(self):
        fn_env = self.global_env.extend("function", "f")
        block = fn_env.extend("block")
        self.assertIs(block.var_scope(), fn_env)
        self.assertIs(self.global_env.var_scope(), self.global_env)

    def test_outer_is_a_handle(self):
        block = self.global_env.extend("block")
        self.assertIsInstance(block.outer, int)
        self.assertIs(self.arena.resolve(block.outer), self.global_env)
        self.assertEqual(len(self.arena), 2)


class TestSnapshot(unittest.TestCase):
    def setUp(self):
        self.arena = EnvironmentArena()
        self.global_env = self.arena.new_global()
        self.global_env.create_mutable_binding("console", "builtin", "native")
        self.global_env.create_mutable_binding("x", "let", 1.0)

    def test_innermost_first_with_merged_blocks(self):
        fn_env = self.arena.allocate("function", "outer", self.global_env.handle)
        fn_env.create_mutable_binding("a", "param", 2.0)
        loop = fn_env.extend("block")
        loop.create_mutable_binding("i", "let", 0.0)
        body = loop.extend("block")
        body.create_mutable_binding("j", "let", 1.0)
        groups = body.snapshot_chain()
        self.assertEqual([label for label, _ in groups], ["Block#2", "outer", "Global"])
        self.assertEqual(groups[0][1], {"i": 0.0, "j": 1.0})
        self.assertEqual(groups[2][1], {"x": 1.0})

    def test_builtins_and_uninitialized_hidden(self):
        self.global_env.create_mutable_binding("Later", "class", UNINITIALIZED)
        [(label, bindings)] = self.global_env.snapshot_chain()
        self.assertEqual(label, "Global")
        self.assertEqual(bindings, {"x": 1.0})

    def test_recursive_frames_get_distinct_labels(self):
        first = self.arena.allocate("function", "f", self.global_env.handle)
        second = self.arena.allocate("function", "f", first.handle)
        labels = [label for label, _ in second.snapshot_chain()]
        self.assertEqual(labels, ["Function#2", "f", "Global"])


class TestHoisting(unittest.TestCase):
    def test_pattern_names(self):
        decl = parse("let {a, b: [c, ...d], e = 1, ...rest} = obj;").body[0]
        self.assertEqual(list(pattern_names(decl.declarations[0].id)), ["a", "c", "d", "e", "rest"])

    def test_var_names_include_loop_heads(self):
        program = parse("var a = 1;\nfor (var i = 0; i < 1; i++) {}\nfor (var k in o) {}\nlet b = 2;")
        self.assertEqual(var_names(program.body), ["a", "i", "k"])

    def test_hoist_declarations(self):
        program = parse("f();\nvar v = 1;\nfunction f() {}\nclass K {}\nlet l = 1;")
        arena = EnvironmentArena()
        env = arena.new_global()
        made = []

        def make_function(node, scope):
            made.append(node.id.name)
            return "fn:" + node.id.name

        hoisted = hoist_declarations(program.body, env, make_function)
        self.assertEqual(hoisted, ["f", "K", "v"])
        self.assertEqual(made, ["f"])
        self.assertEqual(env.get("f"), "fn:f")
        self.assertIs(env.get("v"), undefined)
        self.assertFalse(env.record.bindings["K"].initialized)
        self.assertFalse(env.record.has_binding("l"))


if __name__ == '__main__':
    unittest.main()
