import json
import unittest
from typing import List, Optional

from jsstep import generate_timeline
from jsstep.driver import TimelineResult


class TimelineTestCase(unittest.TestCase):
    """Base class that runs programs and re-checks the timeline shape in tearDown.

    Tests that produce a timeline should go through `run_js` so the invariants
    below are verified for every program a test executes.
    """

    def setUp(self):
        self.timelines: List[TimelineResult] = []

    def tearDown(self):
        for timeline in self.timelines:
            steps = [entry.step for entry in timeline]
            self.assertEqual(steps, list(range(len(steps))))
            for position, entry in enumerate(timeline):
                self.assertEqual(timeline.index_by_step[entry.step], position)
            json.loads(timeline.to_json())

    def run_js(self, source: str, max_steps: Optional[int] = None, **kwargs) -> TimelineResult:
        timeline = generate_timeline(source, max_steps=max_steps, **kwargs)
        self.timelines.append(timeline)
        return timeline

    def output_of(self, source: str, **kwargs) -> List[str]:
        timeline = self.run_js(source, **kwargs)
        final = timeline[-1]
        self.assertIsNone(final.error, f"program failed: {final.error}")
        return list(final.output)

    def assertOutput(self, source: str, expected: List[str], **kwargs):
        self.assertEqual(self.output_of(source, **kwargs), list(expected))

    @staticmethod
    def flows(timeline) -> List[str]:
        return [line for entry in timeline for line in entry.control_flow]

    def assertFlow(self, timeline, text: str):
        flows = self.flows(timeline)
        self.assertTrue(any(text in line for line in flows), f"{text!r} not in {flows}")

    def error_of(self, source: str, **kwargs) -> str:
        timeline = self.run_js(source, **kwargs)
        final = timeline[-1]
        self.assertIsNotNone(final.error, "program was expected to fail")
        return final.error
