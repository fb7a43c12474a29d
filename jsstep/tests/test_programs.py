import os
import unittest

import yaml

from jsstep.tests.test_base import TimelineTestCase

PROGRAMS_FILE = os.path.join(os.path.dirname(__file__), "programs.yaml")


def load_programs():
    with open(PROGRAMS_FILE, encoding="utf-8") as f:
        return yaml.safe_load(f)


class TestPrograms(TimelineTestCase):
    def test_programs(self):
        programs = load_programs()
        self.assertTrue(programs)
        for program in programs:
            with self.subTest(program["name"]):
                timeline = self.run_js(program["source"])
                final = timeline[-1]
                if "error" in program:
                    self.assertEqual(final.error, program["error"])
                else:
                    self.assertIsNone(final.error, final.error)
                    self.assertEqual(final.output, program["output"])


if __name__ == '__main__':
    unittest.main()
