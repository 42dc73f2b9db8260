"""Goal run reports."""

from reporting.report import OUTPUT_HEADINGS, GoalReport, PhaseOutcome

__all__ = ["GoalReport", "OUTPUT_HEADINGS", "PhaseOutcome"]
