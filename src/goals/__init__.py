"""Goal definitions and orchestration."""

import logging
import time
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from cloud import CloudFoundryClient
from common import ActionResult
from reporting import GoalReport

logger = logging.getLogger(__name__)


@runtime_checkable
class Goal(Protocol):
    """Protocol for goal definitions.

    Class attributes:
        name: Goal identifier (e.g., 'clean-space')
        description: Human-readable description
        requires_app: If True, an application name must be given (default: False)
        requires_confirmation: If True, the CLI asks before running (default: False)
        required_params: Param names the CLI must receive (default: none)
    """
    name: str
    description: str
    # Optional attributes with defaults checked in CLI
    # requires_app: bool = False
    # requires_confirmation: bool = False
    # required_params: list[str] = []

    def get_phases(self, params: dict) -> list[tuple[str, Any, str]]:
        """Return list of (phase_name, action, description) tuples."""
        ...


class GoalRunner:
    """Runs a goal's phases in order against one client.

    Params seed the shared context, and each phase's context updates are
    merged into it before the next phase runs. The first failed phase stops
    the run unless its result sets continue_on_failure.
    """

    def __init__(
        self,
        goal: Goal,
        client: Optional[CloudFoundryClient],
        target: str,
        report_dir: Optional[Path] = None,
        params: Optional[dict] = None,
        skip_phases: Optional[list[str]] = None,
        dry_run: bool = False
    ):
        self.goal = goal
        self.client = client
        self.target = target
        self.params = params or {}
        self.skip_phases = skip_phases or []
        self.dry_run = dry_run
        self.report = GoalReport(goal=goal.name, target=target, report_dir=report_dir, params=self.params)
        self.context: dict[str, Any] = dict(self.params)

    def _plan(self) -> list[tuple[str, Any, str, bool]]:
        """(phase, action, description, skipped) for each phase of the goal."""
        return [
            (phase, action, description, phase in self.skip_phases)
            for phase, action, description in self.goal.get_phases(self.params)
        ]

    def preview(self) -> bool:
        """Print what a run would do. Contacts nothing; returns True."""
        print(f"DRY-RUN: {self.goal.name} on target '{self.target}'")
        for key, value in sorted(self.params.items()):
            if value not in (None, '', False):
                print(f"  {key}: {value}")
        for number, (phase, action, description, skipped) in enumerate(self._plan(), 1):
            marker = 'skip' if skipped else f"{number:>4}"
            print(f"  {marker}  {phase:<16} {description} [{type(action).__name__}]")
        print("No changes made. Remove --dry-run to execute the goal.")
        return True

    def run(self) -> bool:
        """Run all phases. Returns True if every phase that ran passed."""
        if self.dry_run:
            return self.preview()

        logger.info(f"Starting goal '{self.goal.name}' on target: {self.target}")
        self.report.start()
        success = True

        for phase, action, description, skipped in self._plan():
            if skipped:
                logger.info(f"Skipping phase: {phase}")
                self.report.skip(phase, description)
                continue

            logger.info(f"Running phase: {phase} - {description}")
            result = self._run_phase(phase, action)
            self.context.update(result.context_updates or {})
            self.report.record(phase, description, result)
            if result.success:
                logger.info(f"Phase {phase} passed")
                continue

            logger.error(f"Phase {phase} failed: {result.message}")
            success = False
            if not result.continue_on_failure:
                break

        for path in self.report.finish(success):
            logger.info(f"Report written: {path}")
        logger.info(f"Goal '{self.goal.name}' {'passed' if success else 'failed'} in {self.report.duration:.1f}s")
        return success

    def _run_phase(self, phase: str, action: Any) -> ActionResult:
        """Run one action. An exception it raises becomes a failed result."""
        start = time.time()
        try:
            return action.run(self.client, self.context)
        except Exception as e:  # pylint: disable=broad-except
            logger.exception(f"Phase {phase} raised exception")
            return ActionResult(success=False, message=str(e), duration=time.time() - start)


# Registry of available goals
_goals: dict[str, type[Goal]] = {}


def register_goal(cls: type[Goal]) -> type[Goal]:
    """Decorator to register a goal class."""
    _goals[cls.name] = cls
    return cls


def get_goal(name: str) -> Goal:
    """Get a goal instance by name."""
    if name not in _goals:
        available = list(_goals.keys())
        raise ValueError(f"Unknown goal: {name}. Available: {available}")
    return _goals[name]()


def list_goals() -> list[str]:
    """List available goal names."""
    return sorted(_goals.keys())


# Import goals to trigger registration
from goals import clean_space  # noqa: E402, F401
from goals import clone_env  # noqa: E402, F401
from goals import get_file  # noqa: E402, F401
