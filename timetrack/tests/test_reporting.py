from __future__ import annotations

import unittest

from timetrack.models import SessionSummary
from timetrack.reporting import UNCATEGORIZED, category_totals, format_clock, format_duration, render_summary


class TestReporting(unittest.TestCase):
    def test_format_helpers(self) -> None:
        self.assertEqual(format_duration(59), "0分59秒")
        self.assertEqual(format_duration(3725), "1小时02分05秒")
        self.assertEqual(format_duration(-5), "0分00秒")
        self.assertEqual(format_clock(3725), "01:02:05")
        self.assertEqual(format_clock(30.9), "00:00:30")

    def test_category_totals_and_table(self) -> None:
        summaries = [
            SessionSummary(1, "Write report", "Work", 2, 900),
            SessionSummary(2, "Review code", "Work", 1, 300),
            SessionSummary(3, "Read book", None, 1, 1500),
        ]

        totals = category_totals(summaries)
        self.assertEqual([t.category for t in totals], [UNCATEGORIZED, "Work"])
        self.assertEqual(totals[1].task_count, 2)
        self.assertEqual(totals[1].session_count, 3)
        self.assertEqual(totals[1].total_seconds, 1200)

        lines = render_summary(summaries)
        self.assertIn("| Write report | Work | 2 | 15分00秒 |", lines)
        self.assertIn(f"| {UNCATEGORIZED} | 1 | 1 | 25分00秒 |", lines)
        self.assertEqual(render_summary([]), ["暂无任务。"])


if __name__ == "__main__":
    unittest.main()
