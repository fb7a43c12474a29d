import math
import unittest

from jsstep.builtins import number_to_radix, parse_float, parse_int, to_fixed
from jsstep.errors import JSRangeError
from jsstep.tests.test_base import TimelineTestCase


class TestNumberHelpers(unittest.TestCase):
    def test_parse_int(self):
        self.assertEqual(parse_int("42px"), 42.0)
        self.assertEqual(parse_int("  -17"), -17.0)
        self.assertEqual(parse_int("0x1A"), 26.0)
        self.assertEqual(parse_int("101", 2.0), 5.0)
        self.assertTrue(math.isnan(parse_int("\u0661\u0662")))
        self.assertEqual(parse_int("7\u00b2"), 7.0)

    def test_parse_float(self):
        self.assertEqual(parse_float("3.5abc"), 3.5)
        self.assertEqual(parse_float("-Infinity"), float("-inf"))
        self.assertEqual(parse_float(".5"), 0.5)
        self.assertTrue(math.isnan(parse_float("\u0663")))

    def test_to_fixed_and_radix(self):
        self.assertEqual(to_fixed(3.14159, 2.0), "3.14")
        self.assertEqual(to_fixed(2.5, 0.0), "3")
        self.assertEqual(to_fixed(-0.001, 1.0), "0.0")
        self.assertEqual(number_to_radix(255.0, 16.0), "ff")
        self.assertEqual(number_to_radix(-5.0, 2.0), "-101")

    def test_infinite_digit_arguments_are_range_errors(self):
        with self.assertRaises(JSRangeError):
            to_fixed(1.5, float("inf"))
        with self.assertRaises(JSRangeError):
            number_to_radix(5.0, float("-inf"))


class TestArrayBuiltins(TimelineTestCase):
    def test_mutators(self):
        self.assertOutput(
            "const a = [3, 1, 2];\n"
            "a.push(4);\n"
            "console.log(a.length, a.join('-'));\n"
            "console.log(a.pop(), a.shift(), a);\n"
            "a.unshift(0);\n"
            "console.log(a);",
            ["4 3-1-2-4", "4 3 [1,2]", "[0,1,2]"])

    def test_splice_and_slice(self):
        self.assertOutput(
            "const a = [1, 2, 3, 4];\n"
            "const removed = a.splice(1, 2, 'x');\n"
            "console.log(removed, a);\n"
            "console.log([1, 2, 3].slice(-2), [1, 2, 3].slice(1, 2));",
            ['[2,3] [1,"x",4]', "[2,3] [2]"])

    def test_callbacks(self):
        self.assertOutput(
            "const nums = [1, 2, 3, 4];\n"
            "console.log(nums.map(x => x * 2));\n"
            "console.log(nums.filter(x => x % 2 === 0));\n"
            "console.log(nums.reduce((sum, x) => sum + x, 0));\n"
            "console.log(nums.find(x => x > 2), nums.findIndex(x => x > 2));\n"
            "console.log(nums.some(x => x > 3), nums.every(x => x > 3));",
            ["[2,4,6,8]", "[2,4]", "10", "3 2", "true false"])

    def test_for_each_sees_index(self):
        self.assertOutput(
            "let text = '';\n"
            "['a', 'b'].forEach((item, i) => { text += i + item; });\n"
            "console.log(text);",
            ["0a1b"])

    def test_sort(self):
        self.assertOutput(
            "console.log([10, 9, 1].sort());\n"
            "console.log([10, 9, 1].sort((a, b) => a - b));",
            ["[1,10,9]", "[1,9,10]"])

    def test_searching(self):
        self.assertOutput(
            "const a = [1, NaN, 'x'];\n"
            "console.log(a.indexOf('x'), a.indexOf(NaN), a.includes(NaN), a.at(-1));",
            ["2 -1 true x"])

    def test_static_helpers(self):
        self.assertOutput(
            "console.log(Array.from('ab'), Array.isArray([]), Array.isArray('ab'));\n"
            "console.log(Array.from([1, 2], x => x * 10), [[1, [2]], 3].flat());\n"
            "console.log(new Array(3).length, Array.of(7));",
            ['["a","b"] true false', "[10,20] [1,[2],3]", "3 [7]"])

    def test_infinite_depth_and_positions(self):
        self.assertOutput(
            "const nested = [1, [2, [3, [4]]]];\n"
            "console.log(nested.flat(Infinity), nested.at(Infinity), nested.at(-Infinity));\n"
            "console.log([1, 2, 3].slice(-Infinity, Infinity), [1]['²']);",
            ["[1,2,3,4] undefined undefined", "[1,2,3] undefined"])

    def test_far_index_write_fails(self):
        error = self.error_of("const a = [];\na[1e9] = 1;")
        self.assertEqual(error, "RangeError: Array length 1000000001 exceeds the supported size")

    def test_huge_length_fails(self):
        error = self.error_of("const a = [1];\na.length = 4294967295;")
        self.assertEqual(error, "RangeError: Array length 4294967295 exceeds the supported size")
        error = self.error_of("new Array(1e9);")
        self.assertEqual(error, "RangeError: Array length 1000000000 exceeds the supported size")

    def test_invalid_length_is_range_error(self):
        error = self.error_of("const a = [1];\na.length = -1;")
        self.assertEqual(error, "RangeError: Invalid array length")

    def test_reduce_empty_without_initial_value_fails(self):
        error = self.error_of("[].reduce((a, b) => a + b);")
        self.assertEqual(error, "TypeError: Reduce of empty array with no initial value")

    def test_callback_exception_propagates(self):
        self.assertOutput(
            "try {\n"
            "  [1, 2].map(x => { throw new Error('boom ' + x); });\n"
            "} catch (e) {\n"
            "  console.log(e.message);\n"
            "}",
            ["boom 1"])


class TestStringBuiltins(TimelineTestCase):
    def test_case_and_trim(self):
        self.assertOutput(
            "const s = '  Hello ';\n"
            "console.log(s.trim().toUpperCase() + '|' + s.trimEnd() + '|');",
            ["HELLO|  Hello|"])

    def test_split_join(self):
        self.assertOutput(
            "console.log('a,b,c'.split(','), 'abc'.split(''), 'a,b'.split(',', 1));",
            ['["a","b","c"] ["a","b","c"] ["a"]'])

    def test_search_and_slice(self):
        self.assertOutput(
            "const s = 'hello world';\n"
            "console.log(s.indexOf('o'), s.lastIndexOf('o'), s.includes('wor'));\n"
            "console.log(s.slice(-5), s.substring(5, 0), s.charAt(1), s.at(-1));\n"
            "console.log(s.startsWith('hell'), s.endsWith('world'), s.charCodeAt(0));",
            ["4 7 true", "world hello e d", "true true 104"])

    def test_padding_and_repeat(self):
        self.assertOutput(
            "console.log('5'.padStart(3, '0'), 'ab'.padEnd(5, '.') + '|', 'ha'.repeat(3));",
            ["005 ab...| hahaha"])

    def test_replace(self):
        self.assertOutput(
            "console.log('a-b-c'.replace('-', '+'), 'a-b-c'.replaceAll('-', '+'));\n"
            "console.log('cat'.replace('a', m => m.toUpperCase()));",
            ["a+b-c a+b+c", "cAt"])

    def test_string_indexing_and_length(self):
        self.assertOutput("const s = 'abc';\nconsole.log(s[0], s.length, s[5]);", ["a 3 undefined"])

    def test_template_literals(self):
        self.assertOutput(
            "const name = 'Ann';\n"
            "const n = 2;\n"
            "console.log(`${name} has ${n * 2} items`);",
            ["Ann has 4 items"])

    def test_infinite_positions(self):
        self.assertOutput(
            "const s = 'abc';\n"
            "console.log(s.charAt(Infinity) === '', s.charCodeAt(-Infinity), s.at(Infinity), s.at(-Infinity));\n"
            "console.log('a'.padStart(-Infinity) + '|', 'a,b,c'.split(',', Infinity).length, 'a,b'.split(',', -1));",
            ["true NaN undefined undefined", 'a| 0 ["a","b"]'])

    def test_oversized_strings_fail(self):
        self.assertEqual(self.error_of("'a'.padStart(Infinity);"), "RangeError: Invalid string length")
        self.assertEqual(self.error_of("'ab'.repeat(2 ** 29);"), "RangeError: Invalid string length")

    def test_repeat_negative_count_fails(self):
        error = self.error_of("'x'.repeat(-1);")
        self.assertEqual(error, "RangeError: Invalid count value: -1")


class TestMathAndNumbers(TimelineTestCase):
    def test_math_functions(self):
        self.assertOutput(
            "console.log(Math.max(1, 5, 3), Math.min(), Math.floor(2.7), Math.ceil(2.1));\n"
            "console.log(Math.round(2.5), Math.round(-2.5), Math.abs(-4), Math.pow(2, 8));\n"
            "console.log(Math.sqrt(-1), Math.trunc(-3.7), Math.sign(-9));",
            ["5 Infinity 2 3", "3 -2 4 256", "NaN -3 -1"])

    def test_random_is_seeded_per_run(self):
        source = "console.log(Math.random(), Math.random());"
        first = self.output_of(source)
        second = self.output_of(source)
        self.assertEqual(first, second)
        a, b = (float(x) for x in first[0].split())
        self.assertNotEqual(a, b)
        self.assertTrue(0 <= a < 1 and 0 <= b < 1)

    def test_number_methods(self):
        self.assertOutput(
            "const n = 255;\n"
            "console.log(n.toString(16), (3.14159).toFixed(2), Number('12'), Number(''));\n"
            "console.log(Number.isInteger(5), Number.isInteger(5.5), Number.isNaN('x'), isNaN('x'));\n"
            "console.log(parseInt('42px'), parseFloat('3.5kg'), String(12) + 1);",
            ["ff 3.14 12 0", "true false false true", "42 3.5 121"])

    def test_floating_point_output(self):
        self.assertOutput("console.log(0.1 + 0.2, 1 / 3, 2 ** 53);",
                          ["0.30000000000000004 0.3333333333333333 9007199254740992"])


class TestObjectAndJson(TimelineTestCase):
    def test_object_helpers(self):
        self.assertOutput(
            "const o = {a: 1, b: 2};\n"
            "console.log(Object.keys(o), Object.values(o));\n"
            "console.log(Object.entries(o));\n"
            "const merged = Object.assign({}, o, {c: 3});\n"
            "console.log(merged, o.hasOwnProperty('a'), o.hasOwnProperty('z'));",
            ['["a","b"] [1,2]', '[["a",1],["b",2]]', '{"a":1,"b":2,"c":3} true false'])

    def test_object_create_and_from_entries(self):
        self.assertOutput(
            "const base = {greet: 'hi'};\n"
            "const child = Object.create(base);\n"
            "console.log(child.greet, Object.keys(child).length);\n"
            "console.log(Object.fromEntries([['x', 1], ['y', 2]]));",
            ["hi 0", '{"x":1,"y":2}'])

    def test_json_stringify(self):
        self.assertOutput(
            "console.log(JSON.stringify({a: 1, b: [true, null, 'x'], c: undefined}));\n"
            "console.log(JSON.stringify([1, undefined]));\n"
            "console.log(JSON.stringify({a: 1}, null, 2));",
            ['{"a":1,"b":[true,null,"x"]}', "[1,null]", '{\n  "a": 1\n}'])

    def test_json_parse(self):
        self.assertOutput(
            "const data = JSON.parse('{\"x\": [1, 2], \"ok\": true}');\n"
            "console.log(data.x[1] + 1, data.ok);",
            ["3 true"])

    def test_json_errors_are_catchable(self):
        self.assertOutput(
            "try {\n"
            "  JSON.parse('{bad');\n"
            "} catch (e) {\n"
            "  console.log(e.name);\n"
            "}\n"
            "const o = {};\n"
            "o.self = o;\n"
            "try {\n"
            "  JSON.stringify(o);\n"
            "} catch (e) {\n"
            "  console.log(e.message);\n"
            "}",
            ["SyntaxError", "Converting circular structure to JSON"])

    def test_console_shows_structures_compactly(self):
        self.assertOutput(
            "console.log({name: 'x', list: [1, 2], nested: {deep: true}});\n"
            "console.log('plain', 1, true, null, undefined);",
            ['{"name":"x","list":[1,2],"nested":{"deep":true}}', "plain 1 true null undefined"])


class TestFunctionAndErrorBuiltins(TimelineTestCase):
    def test_call_apply_bind(self):
        self.assertOutput(
            "function greet(greeting) { return greeting + ', ' + this.name; }\n"
            "const person = {name: 'Ann'};\n"
            "console.log(greet.call(person, 'Hi'));\n"
            "console.log(greet.apply(person, ['Yo']));\n"
            "const bound = greet.bind(person, 'Hey');\n"
            "console.log(bound());",
            ["Hi, Ann", "Yo, Ann", "Hey, Ann"])

    def test_function_name_and_length(self):
        self.assertOutput("function add(a, b) { return a + b; }\nconsole.log(add.name, add.length);",
                          ["add 2"])

    def test_error_objects(self):
        self.assertOutput(
            "const e = new RangeError('too big');\n"
            "console.log(e.name, e.message, e instanceof RangeError, e instanceof Error);\n"
            "console.log(e);\n"
            "console.log(String(new Error('plain')));",
            ["RangeError too big true true", "RangeError: too big", "Error: plain"])


if __name__ == '__main__':
    unittest.main()
