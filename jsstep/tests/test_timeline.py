import math
import unittest

from jsstep.environment import EnvironmentArena
from jsstep.errors import StepLimitExceeded
from jsstep.timeline import NextStep, TimelineLogger, compute_diff, same_value, to_plain
from jsstep.values import SIDE_EFFECT, JSArray, JSObject, undefined


class TestDiff(unittest.TestCase):
    def test_added_changed_removed(self):
        prev = {"Global": {"a": 1, "b": [1, 2]}, "f": {"x": True}}
        curr = {"Global": {"a": 2, "b": [1, 2], "c": "new"}}
        diff = compute_diff(prev, curr)
        self.assertEqual(diff["added"], {"Global.c": "new"})
        self.assertEqual(diff["changed"], {"Global.a": {"from": 1, "to": 2}})
        self.assertEqual(diff["removed"], {"f.x": True})

    def test_first_snapshot_is_all_added(self):
        diff = compute_diff(None, {"Global": {"a": 1}})
        self.assertEqual(diff, {"added": {"Global.a": 1}, "changed": {}, "removed": {}})

    def test_same_value_is_type_aware(self):
        self.assertTrue(same_value({"a": [1]}, {"a": [1]}))
        self.assertFalse(same_value(1, True))
        self.assertFalse(same_value(1, "1"))
        self.assertFalse(same_value(1, 1.5))

    def test_to_plain(self):
        self.assertEqual(to_plain({"a": [undefined, 1]}), {"a": [None, 1]})


class TestSerializeValue(unittest.TestCase):
    def setUp(self):
        self.logger = TimelineLogger("", [], max_serialize_depth=2)

    def test_primitives(self):
        s = self.logger.serialize_value
        self.assertEqual(s(3.0), 3)
        self.assertIsInstance(s(3.0), int)
        self.assertEqual(s(2.5), 2.5)
        self.assertEqual(s(math.nan), "NaN")
        self.assertEqual(s(-math.inf), "-Infinity")
        self.assertIs(s(undefined), undefined)
        self.assertEqual(s(SIDE_EFFECT), "[Side Effect]")

    def test_structures_and_depth(self):
        nested = JSArray([1.0, JSArray([2.0, JSArray([3.0])])])
        self.assertEqual(self.logger.serialize_value(nested), [1, [2, "[Object]"]])

    def test_circular(self):
        obj = JSObject()
        obj["self"] = obj
        obj["n"] = 1.0
        self.assertEqual(self.logger.serialize_value(obj), {"self": "[Circular]", "n": 1})

    def test_class_instances_are_tagged(self):
        obj = JSObject(class_name="Point")
        obj["x"] = 1.0
        self.assertEqual(self.logger.serialize_value(obj), {"[Object]": "Point", "x": 1})


class TestTimelineLogger(unittest.TestCase):
    def setUp(self):
        self.arena = EnvironmentArena()
        self.env = self.arena.new_global()
        self.stack = []
        self.logger = TimelineLogger("let x = 1;", self.stack, max_steps=3)

    def test_entries_snapshot_state(self):
        self.env.create_mutable_binding("x", "let", 1.0)
        first = self.logger.log(0, None, self.env)
        self.stack.append("f")
        self.env.set("x", 2.0)
        second = self.logger.log(0, None, self.env)
        self.assertEqual(first.variables, {"Global": {"x": 1}})
        self.assertEqual(first.stack, [])
        self.assertEqual(second.stack, ["f"])
        self.assertEqual(second.diff["changed"], {"Global.x": {"from": 1, "to": 2}})
        self.assertEqual([first.step, second.step], [0, 1])

    def test_step_limit(self):
        for _ in range(3):
            self.logger.log(0, None, self.env)
        with self.assertRaises(StepLimitExceeded):
            self.logger.log(0, None, self.env)
        self.logger.log(0, None, self.env, enforce_limit=False)
        self.assertEqual(len(self.logger.entries), 4)

    def test_narration_attaches_to_last_entry(self):
        self.logger.add_flow("ignored before any entry")
        entry = self.logger.log(0, None, self.env)
        self.logger.add_flow("hello")
        self.logger.set_next(1, "Next Step → x")
        self.logger.log_output("a", 1.0, JSArray([1.0]))
        self.assertEqual(entry.control_flow, ["hello"])
        self.assertEqual(entry.next_step, NextStep(1, "Next Step → x"))
        self.assertEqual(entry.output, ["a 1 [1]"])

    def test_terminal_entry_repeats_state(self):
        self.env.create_mutable_binding("x", "let", 1.0)
        self.logger.log(4, None, self.env)
        terminal = self.logger.log_terminal("stopped", "stopped", error="boom")
        self.assertEqual(terminal.step, 1)
        self.assertEqual(terminal.line, 4)
        self.assertEqual(terminal.variables, {"Global": {"x": 1}})
        self.assertEqual(terminal.error, "boom")
        self.assertEqual(terminal.next_step.line, None)

    def test_to_dict_shape(self):
        self.env.create_mutable_binding("u", "let", undefined)
        entry = self.logger.log(0, None, self.env)
        self.logger.set_next(None, "End of program.")
        data = entry.to_dict()
        self.assertEqual(set(data), {"step", "line", "variables", "stack", "output", "controlFlow",
                                     "expressionEval", "nextStep", "metadata", "diff"})
        self.assertEqual(data["variables"], {"Global": {"u": None}})
        self.assertEqual(data["nextStep"], {"line": None, "message": "End of program."})
        self.assertEqual(data["metadata"]["activeScope"], "Global")


if __name__ == '__main__':
    unittest.main()
