import json
import os
import tempfile
import unittest
from unittest import mock

from jsstep import RunOptions, load_options
from jsstep.driver import STEP_LIMIT_MESSAGE
from jsstep.interpreter import Interpreter
from jsstep.tests.test_base import TimelineTestCase


class TestGenerateTimeline(TimelineTestCase):
    def test_simple_program(self):
        timeline = self.run_js("let x = 1;\nx = x + 2;\nconsole.log(x);")
        self.assertEqual(len(timeline), 5)
        ready, declare, assign, log_call, finish = timeline
        self.assertEqual(ready.control_flow, ["Ready to run. Click Next to start."])
        self.assertEqual(ready.next_step.line, 0)
        self.assertEqual(ready.variables, {})
        self.assertEqual(declare.line, 0)
        self.assertEqual(declare.next_step.line, 1)
        self.assertEqual(assign.variables, {"Global": {"x": 1}})
        self.assertEqual(log_call.variables, {"Global": {"x": 3}})
        self.assertEqual(log_call.output, ["3"])
        self.assertEqual(finish.control_flow, ["Program finished"])
        self.assertEqual(finish.next_step.message, "No more steps")
        self.assertIsNone(finish.error)

    def test_expression_eval_recorded(self):
        timeline = self.run_js("let a = 2;\na * 3;")
        info = timeline[2].expression_eval["a * 3"]
        self.assertEqual(info.result, 6)
        self.assertEqual(info.friendly, ["Expression result: 6"])
        self.assertTrue(info.breakdown)

    def test_empty_program(self):
        timeline = self.run_js("// nothing here\n")
        self.assertEqual(timeline[0].control_flow, ["Ready to run, but no code found."])
        self.assertEqual(timeline[0].next_step.message, "End of program.")
        self.assertEqual(timeline[-1].control_flow, ["Program finished"])

    def test_syntax_error(self):
        timeline = self.run_js("let a = 1;\nlet = ;")
        self.assertEqual(len(timeline), 1)
        entry = timeline[0]
        self.assertEqual(entry.step, 0)
        self.assertEqual(entry.line, 1)
        self.assertTrue(entry.error.startswith("SyntaxError"))
        self.assertEqual(entry.output, [entry.error])
        self.assertEqual(entry.next_step.message, "Execution failed due to a syntax error.")

    def test_step_limit(self):
        timeline = self.run_js("while (true) {}", max_steps=50)
        final = timeline[-1]
        self.assertEqual(final.step, 50)
        self.assertEqual(final.error, "Step limit exceeded")
        self.assertEqual(final.control_flow, [STEP_LIMIT_MESSAGE])
        self.assertEqual(len(timeline), 51)

    def test_runtime_error_keeps_last_state(self):
        timeline = self.run_js("let a = 1;\nconsole.log('hi');\na.b.c;")
        final = timeline[-1]
        self.assertEqual(final.error, "TypeError: Cannot read properties of undefined (reading 'c')")
        self.assertEqual(final.control_flow, [f"Execution error: {final.error}"])
        self.assertEqual(final.output, ["hi"])
        self.assertEqual(final.variables, timeline[-2].variables)
        self.assertEqual(final.line, 2)

    def test_out_of_range_code_point_is_syntax_error(self):
        timeline = self.run_js("let a = 1;\nconst s = '\\u{110000}';")
        entry = timeline[0]
        self.assertEqual(len(timeline), 1)
        self.assertTrue(entry.error.startswith("SyntaxError: Undefined Unicode code-point"))
        self.assertEqual(entry.line, 1)

    def test_host_failure_becomes_internal_error(self):
        with mock.patch.object(Interpreter, "run_program", side_effect=ValueError("broken")):
            timeline = self.run_js("let a = 1;")
        final = timeline[-1]
        self.assertEqual(final.error, "Internal error: ValueError: broken")
        self.assertEqual(final.control_flow, ["Execution error: Internal error: ValueError: broken"])
        self.assertEqual(final.step, 1)

    def test_deterministic(self):
        source = "let s = 0;\nfor (let i = 0; i < 4; i++) {\n  s += Math.random() > 0.5 ? 1 : 0;\n}\nconsole.log(s);"
        first = self.run_js(source).to_json()
        second = self.run_js(source).to_json()
        self.assertEqual(first, second)

    def test_to_json_shape(self):
        timeline = self.run_js("const n = NaN;\nconsole.log(n);")
        payload = json.loads(timeline.to_json())
        self.assertEqual(set(payload), {"timeline", "indexByStep"})
        self.assertEqual(payload["indexByStep"]["1"], 1)
        self.assertEqual(payload["timeline"][-1]["variables"], {"Global": {"n": "NaN"}})
        self.assertEqual(timeline.by_step(1).step, 1)
        self.assertIs(timeline.final, timeline[-1])

    def test_seed_changes_random_sequence(self):
        source = "console.log(Math.random());"
        one = self.output_of(source, options=RunOptions(seed=1))
        two = self.output_of(source, options=RunOptions(seed=2))
        self.assertNotEqual(one, two)


class TestOptions(unittest.TestCase):
    def test_defaults(self):
        options = load_options()
        self.assertEqual(options, RunOptions())
        self.assertEqual(options.max_steps, 2000)

    def test_missing_file_gives_defaults(self):
        self.assertEqual(load_options("/nonexistent/jsstep.ini"), RunOptions())

    def test_file_overrides(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "jsstep.ini")
            with open(path, "w") as f:
                f.write("[Interpreter]\nmaxSteps = 10\nnarrateClosures = False\n")
            options = load_options(path)
        self.assertEqual(options.max_steps, 10)
        self.assertFalse(options.narrate_closures)
        self.assertEqual(options.max_call_depth, 200)

    def test_validation(self):
        with self.assertRaises(ValueError):
            RunOptions(max_steps=0)
        with self.assertRaises(ValueError):
            RunOptions(max_serialize_depth=-1)


if __name__ == '__main__':
    unittest.main()
