"""
Visualizer for Sprint Capacity Planner

Renders sprint planning reports as text for terminals and chat.
"""

from .planner import MemberPlanningEntry, SprintPlanningReport

WIDTH = 72


class ASCIICharts:
    """Generate ASCII art charts for terminal/text output."""

    @staticmethod
    def horizontal_bar(
        value: float,
        max_value: float = 100,
        width: int = 20,
        filled_char: str = "█",
        empty_char: str = "░"
    ) -> str:
        """Create a horizontal bar chart."""
        if max_value <= 0:
            return empty_char * width

        filled = int((value / max_value) * width)
        filled = max(0, min(filled, width))
        return filled_char * filled + empty_char * (width - filled)

    @staticmethod
    def utilization_bar(percentage: float, width: int = 20) -> str:
        """Create a utilization bar with a status marker."""
        bar = ASCIICharts.horizontal_bar(percentage, 100, width)

        if percentage > 100:
            status = "OVER"
        elif percentage >= 80:
            status = "FULL"
        else:
            status = "OK"

        return f"{bar} {percentage:4.0f}% {status}"


def _row(text: str = "") -> str:
    return "║" + text.ljust(WIDTH)[:WIDTH] + "║"


def _rule(char: str = "─") -> str:
    return "║" + char * WIDTH + "║"


class TextReporter:
    """Generate text-based reports."""

    @staticmethod
    def member_line(entry: MemberPlanningEntry) -> str:
        name = entry.display_name[:16].ljust(16)
        if entry.availability is None:
            return f"  {name} {entry.work.issue_count} issues, {entry.committed_hours:.1f}h unplanned"

        bar = ASCIICharts.utilization_bar(entry.utilization_percent, 15)
        return (
            f"  {name} {entry.committed_hours:6.1f}h / {entry.availability.allocated_hours:6.1f}h "
            f"{bar}"
        )

    @staticmethod
    def planning_report(report: SprintPlanningReport) -> str:
        """Generate a text report of a sprint plan."""
        sprint = report.sprint
        totals = report.totals
        lines = []

        # Header
        lines.append("╔" + "═" * WIDTH + "╗")
        lines.append("║" + f"SPRINT PLANNING: {sprint.name}".center(WIDTH) + "║")
        lines.append("║" + f"{sprint.start_date.isoformat()} to {sprint.end_date.isoformat()} ({sprint.state.value})".center(WIDTH) + "║")
        lines.append("╠" + "═" * WIDTH + "╣")

        # Team totals
        lines.append(_row(" TEAM"))
        lines.append(_rule())
        lines.append(_row(f"  Capacity: {totals.total_team_capacity:.1f}h"))
        lines.append(_row(
            f"  Committed: {totals.total_committed:.1f}h "
            f"(dev {totals.total_dev_committed:.1f}h, qa {totals.total_qa_committed:.1f}h)"
        ))
        lines.append(_row(f"  Bandwidth: {totals.total_remaining:.1f}h"))
        lines.append(_row(f"  Utilization: {ASCIICharts.utilization_bar(totals.team_utilization, 20)}"))
        lines.append(_row(f"  Issues: {totals.total_issues}  Story points: {totals.total_story_points:g}"))

        if report.holidays:
            names = ", ".join(f"{h.name} ({h.date.isoformat()})" for h in report.holidays)
            lines.append(_row(f"  Holidays: {names}"))
        lines.append("╠" + "═" * WIDTH + "╣")

        # Members
        lines.append(_row(" MEMBERS"))
        lines.append(_rule())
        for entry in report.members:
            lines.append(_row(TextReporter.member_line(entry)))

        overcommitted = report.get_overcommitted()
        if overcommitted:
            lines.append(_rule())
            names = ", ".join(m.display_name for m in overcommitted)
            lines.append(_row(f"  Overcommitted: {names}"))

        lines.append("╚" + "═" * WIDTH + "╝")

        return "\n".join(lines)
