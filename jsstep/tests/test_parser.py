import unittest

from jsstep.errors import JSSyntaxError
from jsstep.parser import parse, tokenize


class TestParserShapes(unittest.TestCase):
    def test_program_body_and_lines(self):
        program = parse("let x = 1;\nx = x + 2;\nconsole.log(x);")
        self.assertEqual(program.type, "Program")
        self.assertEqual([s.type for s in program.body],
                         ["VariableDeclaration", "ExpressionStatement", "ExpressionStatement"])
        # lines are 0-based
        self.assertEqual([s.line for s in program.body], [0, 1, 2])

    def test_variable_declaration(self):
        decl = parse("const a = 1, b = 'two';").body[0]
        self.assertEqual(decl.kind, "const")
        self.assertEqual([d.id.name for d in decl.declarations], ["a", "b"])
        self.assertEqual(decl.declarations[0].init.value, 1.0)
        self.assertEqual(decl.declarations[1].init.value, "two")

    def test_literal_values(self):
        values = [s.expression.value for s in parse("true; false; null; 0x10; 'a\\nb';").body]
        self.assertEqual(values, [True, False, None, 16.0, "a\nb"])

    def test_arrow_expression_body(self):
        init = parse("const f = (a, b) => a + b;").body[0].declarations[0].init
        self.assertEqual(init.type, "ArrowFunctionExpression")
        self.assertTrue(init.expression)
        self.assertEqual([p.name for p in init.params], ["a", "b"])
        self.assertEqual(init.body.type, "BinaryExpression")

    def test_arrow_block_body(self):
        init = parse("const f = x => { return x; };").body[0].declarations[0].init
        self.assertFalse(init.expression)
        self.assertEqual(init.body.type, "BlockStatement")

    def test_class_members(self):
        cls = parse("class A extends B {\n  constructor(x) { super(x); }\n  static make() {}\n  count = 0;\n}").body[0]
        self.assertEqual(cls.type, "ClassDeclaration")
        self.assertEqual(cls.superClass.name, "B")
        kinds = [(m.type, getattr(m, "kind", None), m.static) for m in cls.body.body]
        self.assertEqual(kinds, [("MethodDefinition", "constructor", False),
                                 ("MethodDefinition", "method", True),
                                 ("PropertyDefinition", None, False)])

    def test_for_of_head(self):
        stmt = parse("for (const [k, v] of pairs) {}").body[0]
        self.assertEqual(stmt.type, "ForOfStatement")
        self.assertEqual(stmt.left.type, "VariableDeclaration")
        self.assertEqual(stmt.left.declarations[0].id.type, "ArrayPattern")

    def test_optional_chain(self):
        expr = parse("a?.b.c;").body[0].expression
        self.assertEqual(expr.type, "ChainExpression")
        self.assertEqual(expr.expression.type, "MemberExpression")

    def test_template_literal(self):
        expr = parse("`sum: ${a + b}!`;").body[0].expression
        self.assertEqual(expr.type, "TemplateLiteral")
        self.assertEqual([q.value["cooked"] for q in expr.quasis], ["sum: ", "!"])
        self.assertEqual(len(expr.expressions), 1)

    def test_labeled_loop(self):
        stmt = parse("outer: while (true) { break outer; }").body[0]
        self.assertEqual(stmt.type, "LabeledStatement")
        self.assertEqual(stmt.label.name, "outer")
        self.assertEqual(stmt.body.body.body[0].label.name, "outer")

    def test_destructuring_assignment_pattern(self):
        expr = parse("[a, b] = [b, a];").body[0].expression
        self.assertEqual(expr.type, "AssignmentExpression")
        self.assertEqual(expr.left.type, "ArrayPattern")

    def test_tokenize_offsets_are_absolute(self):
        tokens = tokenize("let x = 1;")
        self.assertEqual(tokens[1].value, "x")
        self.assertEqual(tokens[1].start, 4)
        self.assertEqual(tokens[-1].type, "EOF")


class TestParserErrors(unittest.TestCase):
    def assertSyntaxError(self, source, line=None):
        with self.assertRaises(JSSyntaxError) as cm:
            parse(source)
        if line is not None:
            self.assertEqual(cm.exception.line, line)
        return cm.exception

    def test_unexpected_token_line(self):
        self.assertSyntaxError("let a = 1;\nlet = ;", line=1)

    def test_unterminated_block(self):
        err = self.assertSyntaxError("if (x) {")
        self.assertIn("Unexpected end of input", err.message)

    def test_const_needs_initializer(self):
        self.assertSyntaxError("const x;")

    def test_return_outside_function(self):
        self.assertSyntaxError("return 1;")

    def test_regex_literal_rejected(self):
        err = self.assertSyntaxError("const r = /ab+/;")
        self.assertIn("Regular expression", err.message)


if __name__ == '__main__':
    unittest.main()
