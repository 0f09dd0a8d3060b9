"""
Tests for text rendering.
"""

from sprint_capacity.models import RawIssue
from sprint_capacity.planner import build_sprint_report
from sprint_capacity.visualizer import ASCIICharts, TextReporter


class TestASCIICharts:
    """Tests for ASCII charts."""

    def test_horizontal_bar(self):
        """Test bar fill and clamping."""
        assert ASCIICharts.horizontal_bar(50, 100, 10) == "█" * 5 + "░" * 5
        assert ASCIICharts.horizontal_bar(150, 100, 10) == "█" * 10
        assert ASCIICharts.horizontal_bar(5, 0, 4) == "░" * 4

    def test_utilization_bar_status(self):
        """Test status markers."""
        assert ASCIICharts.utilization_bar(40).endswith("OK")
        assert ASCIICharts.utilization_bar(85).endswith("FULL")
        assert ASCIICharts.utilization_bar(120).endswith("OVER")


class TestTextReporter:
    """Tests for the text planning report."""

    def test_planning_report(self, roster, sprint):
        """Test the boxed planning report."""
        issues = [
            RawIssue(key="A-1", assignee_id="alice", remaining_estimate_seconds=10 * 3600),
            RawIssue(key="A-2", assignee_id="sam", remaining_estimate_seconds=3600),
            RawIssue(key="A-3", remaining_estimate_seconds=3600),
        ]
        report = build_sprint_report(roster, sprint, [], [], issues)

        text = TextReporter.planning_report(report)

        assert "SPRINT PLANNING: Sprint 5" in text
        assert "2024-01-01 to 2024-01-12 (active)" in text
        assert "Overcommitted: Sam" in text
        assert "1 issues, 1.0h unplanned" in text
        assert all(len(line) == 74 for line in text.splitlines())
