import unittest

from jsstep.tests.test_base import TimelineTestCase


class TestDeclarationPatterns(TimelineTestCase):
    def test_array_pattern_with_holes_defaults_and_rest(self):
        self.assertOutput(
            "const [a, , b = 5, ...rest] = [1, 2, undefined, 4, 5];\n"
            "console.log(a, b, rest);",
            ["1 5 [4,5]"])

    def test_nested_object_pattern(self):
        self.assertOutput(
            "const {pos: {x, y}, label: name = 'none'} = {pos: {x: 1, y: 2}};\n"
            "console.log(x, y, name);",
            ["1 2 none"])

    def test_computed_keys_and_rest(self):
        self.assertOutput(
            "const key = 'b';\n"
            "const {[key]: picked, ...others} = {a: 1, b: 2, c: 3};\n"
            "console.log(picked, others);",
            ['2 {"a":1,"c":3}'])

    def test_string_source(self):
        self.assertOutput("const [first, second] = 'hi';\nconsole.log(first, second);", ["h i"])

    def test_nullish_object_source_is_empty(self):
        self.assertOutput("const {missing} = null;\nconsole.log(missing);", ["undefined"])

    def test_default_takes_binding_name(self):
        self.assertOutput("const {fn = () => 1} = {};\nconsole.log(fn.name, fn());", ["fn 1"])

    def test_destructuring_flow(self):
        timeline = self.run_js("const [p, q] = [1, 2];")
        self.assertFlow(timeline, "Destructuring: [p, q]")
        self.assertEqual(timeline[-1].variables, {"Global": {"p": 1, "q": 2}})


class TestParameterPatterns(TimelineTestCase):
    def test_object_parameter(self):
        self.assertOutput(
            "function area({w, h = w}) { return w * h; }\n"
            "console.log(area({w: 3, h: 4}), area({w: 5}));",
            ["12 25"])

    def test_array_parameter_in_arrow(self):
        self.assertOutput(
            "const sum = ([a, b]) => a + b;\n"
            "console.log([[1, 2], [3, 4]].map(sum));",
            ["[3,7]"])


class TestAssignmentPatterns(TimelineTestCase):
    def test_assign_to_existing_bindings(self):
        self.assertOutput(
            "let x, y;\n"
            "({x, y} = {x: 'a', y: 'b'});\n"
            "console.log(x + y);",
            ["ab"])

    def test_assign_to_member_targets(self):
        self.assertOutput(
            "const box = {};\n"
            "const arr = [];\n"
            "[box.first, arr[0]] = [10, 20];\n"
            "console.log(box.first, arr);",
            ["10 [20]"])

    def test_assignment_to_const_through_pattern_fails(self):
        error = self.error_of("const a = 1;\n[a] = [2];")
        self.assertEqual(error, "TypeError: Assignment to constant variable 'a'")


if __name__ == '__main__':
    unittest.main()
