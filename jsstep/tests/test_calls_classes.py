import unittest

from jsstep import RunOptions
from jsstep.tests.test_base import TimelineTestCase


class TestFunctions(TimelineTestCase):
    def test_recursion(self):
        self.assertOutput(
            "function fact(n) {\n"
            "  if (n <= 1) return 1;\n"
            "  return n * fact(n - 1);\n"
            "}\n"
            "console.log(fact(5));",
            ["120"])

    def test_default_and_rest_parameters(self):
        self.assertOutput(
            "function f(a, b = a * 2, ...rest) {\n"
            "  return [a, b, rest];\n"
            "}\n"
            "console.log(f(1), f(1, 5, 6, 7));",
            ["[1,2,[]] [1,5,[6,7]]"])

    def test_arguments_object(self):
        self.assertOutput("function count() { return arguments.length; }\nconsole.log(count(1, 2, 3));",
                          ["3"])

    def test_function_expressions_take_binding_name(self):
        self.assertOutput(
            "const square = function (x) { return x * x; };\n"
            "const cube = x => x * x * x;\n"
            "console.log(square.name, cube.name, square(3), cube(2));",
            ["square cube 9 8"])

    def test_method_this(self):
        self.assertOutput(
            "const counter = {\n"
            "  n: 2,\n"
            "  double() { return this.n * 2; },\n"
            "  viaArrow() { return [1].map(() => this.n); },\n"
            "};\n"
            "console.log(counter.double(), counter.viaArrow());",
            ["4 [2]"])

    def test_calling_a_non_function(self):
        error = self.error_of("const x = 5;\nx();")
        self.assertEqual(error, "TypeError: x is not a function")

    def test_stack_overflow(self):
        error = self.error_of("function down(n) { return down(n + 1); }\ndown(0);")
        self.assertEqual(error, "RangeError: Maximum call stack size exceeded")

    def test_call_depth_is_configurable(self):
        error = self.error_of(
            "function depth(n) { return n === 0 ? 0 : depth(n - 1); }\ndepth(10);",
            options=RunOptions(max_call_depth=5))
        self.assertEqual(error, "RangeError: Maximum call stack size exceeded")

    def test_call_narration_and_stack(self):
        timeline = self.run_js(
            "function inner() {\n"
            "  return 1;\n"
            "}\n"
            "function outer() {\n"
            "  return inner();\n"
            "}\n"
            "outer();")
        flows = self.flows(timeline)
        self.assertIn("── Call #1 start ──", flows)
        self.assertIn("Calling function outer()", flows)
        self.assertIn("Entering function inner", flows)
        self.assertIn("── Call #2 complete (returned 1) ──", flows)
        self.assertIn("── Call #1 complete (returned 1) ──", flows)
        stacks = [entry.stack for entry in timeline]
        self.assertIn(["outer", "inner"], stacks)
        self.assertEqual(timeline[-1].stack, [])
        inner_entry = next(e for e in timeline if e.stack == ["outer", "inner"])
        self.assertEqual(inner_entry.metadata["callDepth"], 2)
        self.assertEqual(inner_entry.metadata["activeScope"], "inner")

    def test_concise_arrow_adds_no_step(self):
        with_arrow = self.run_js("const add = (a, b) => a + b;\nconsole.log(add(1, 2));")
        self.assertEqual(with_arrow[-1].output, ["3"])
        # ready, two statements, finish
        self.assertEqual(len(with_arrow), 4)
        self.assertFlow(with_arrow, "Entering closure (a = 1, b = 2)")
        self.assertFlow(with_arrow, "Arrow body result → 3")


class TestClosures(TimelineTestCase):
    SOURCE = (
        "function makeCounter() {\n"
        "  let count = 0;\n"
        "  return () => {\n"
        "    count++;\n"
        "    return count;\n"
        "  };\n"
        "}\n"
        "const a = makeCounter();\n"
        "const b = makeCounter();\n"
        "console.log(a(), a(), b());"
    )

    def test_counters_are_independent(self):
        self.assertOutput(self.SOURCE, ["1 2 1"])

    def test_closure_narration(self):
        timeline = self.run_js(self.SOURCE)
        flows = self.flows(timeline)
        self.assertIn("Entering closure ()", flows)
        self.assertIn("Closure created. It remembers: count = 0", flows)

    def test_closure_narration_can_be_disabled(self):
        timeline = self.run_js(self.SOURCE, options=RunOptions(narrate_closures=False))
        self.assertFalse(any(f.startswith("Closure created") for f in self.flows(timeline)))


class TestClasses(TimelineTestCase):
    def test_inheritance_and_super_methods(self):
        self.assertOutput(
            "class Animal {\n"
            "  constructor(name) { this.name = name; }\n"
            "  speak() { return this.name + ' makes a sound'; }\n"
            "}\n"
            "class Dog extends Animal {\n"
            "  speak() { return super.speak() + ' (woof)'; }\n"
            "}\n"
            "const d = new Dog('Rex');\n"
            "console.log(d.speak());\n"
            "console.log(d instanceof Animal, d instanceof Dog);",
            ["Rex makes a sound (woof)", "true true"])

    def test_super_constructor_and_fields(self):
        self.assertOutput(
            "class Pet {\n"
            "  constructor(name) { this.name = name; }\n"
            "}\n"
            "class Cat extends Pet {\n"
            "  lives = 9;\n"
            "  constructor(name) { super(name); }\n"
            "  describe() { return this.name + ' ' + this.lives; }\n"
            "}\n"
            "console.log(new Cat('Tom').describe());",
            ["Tom 9"])

    def test_static_members(self):
        self.assertOutput(
            "class Counter {\n"
            "  static created = 0;\n"
            "  count = 0;\n"
            "  constructor() { Counter.created++; }\n"
            "  increment() { this.count++; return this; }\n"
            "  static make() { return new Counter(); }\n"
            "}\n"
            "const c = Counter.make().increment().increment();\n"
            "console.log(c.count, Counter.created);",
            ["2 1"])

    def test_this_before_super(self):
        error = self.error_of(
            "class A {}\n"
            "class B extends A {\n"
            "  constructor() { this.x = 1; super(); }\n"
            "}\n"
            "new B();")
        self.assertEqual(error, "ReferenceError: Must call super constructor in derived class "
                                "before accessing 'this'")

    def test_class_requires_new(self):
        error = self.error_of("class K {}\nK();")
        self.assertEqual(error, "TypeError: Class constructor K cannot be invoked without 'new'")

    def test_constructor_functions(self):
        self.assertOutput(
            "function Point(x, y) { this.x = x; this.y = y; }\n"
            "Point.prototype.len = function () { return Math.sqrt(this.x * this.x + this.y * this.y); };\n"
            "const p = new Point(3, 4);\n"
            "console.log(p.len(), p instanceof Point);",
            ["5 true"])

    def test_extending_error(self):
        self.assertOutput(
            "class ValidationError extends Error {\n"
            "  constructor(msg) {\n"
            "    super(msg);\n"
            "    this.name = 'ValidationError';\n"
            "  }\n"
            "}\n"
            "try {\n"
            "  throw new ValidationError('bad input');\n"
            "} catch (e) {\n"
            "  console.log(e.name, e.message, e instanceof Error, e instanceof ValidationError);\n"
            "}",
            ["ValidationError bad input true true"])

    def test_instances_show_class_in_variables(self):
        timeline = self.run_js("class P {\n  constructor() { this.v = 1; }\n}\nconst p = new P();")
        final = timeline[-1]
        self.assertEqual(final.variables["Global"]["p"], {"[Object]": "P", "v": 1})
        self.assertEqual(final.variables["Global"]["P"], "[Function]")


if __name__ == '__main__':
    unittest.main()
