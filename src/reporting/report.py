"""Goal run reports.

A GoalReport records each phase of a goal run together with what the phase
produced: deleted applications, services and routes, fetched files, cloned
variable names. It renders as a dict (for --json-output) and, when a report
directory is set, is written there as JSON and markdown.

Cloned environment values can hold credentials, so files on disk list the
variable names only.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from common import ActionResult

# Phase outputs carried into reports, in display order
OUTPUT_HEADINGS = {
    'deleted_applications': 'Deleted applications',
    'deleted_services': 'Deleted services',
    'deleted_routes': 'Deleted routes',
    'fetched_files': 'Fetched files',
    'environment': 'Cloned variables',
}


@dataclass
class PhaseOutcome:
    """How one phase ended and what it produced."""
    name: str
    description: str
    status: str  # 'passed', 'failed', 'skipped'
    message: str = ''
    duration: float = 0.0
    outputs: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_result(cls, name: str, description: str, result: ActionResult) -> 'PhaseOutcome':
        updates = result.context_updates or {}
        return cls(
            name=name,
            description=description,
            status='passed' if result.success else 'failed',
            message=result.message,
            duration=result.duration,
            outputs={key: updates[key] for key in OUTPUT_HEADINGS if key in updates},
        )


@dataclass
class GoalReport:
    """Outcome of one goal run against a target."""
    goal: str
    target: str
    report_dir: Optional[Path] = None
    params: dict[str, Any] = field(default_factory=dict)
    phases: list[PhaseOutcome] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    success: bool = False

    def start(self):
        self.started_at = datetime.now(timezone.utc)

    def record(self, name: str, description: str, result: ActionResult):
        self.phases.append(PhaseOutcome.from_result(name, description, result))

    def skip(self, name: str, description: str):
        self.phases.append(PhaseOutcome(name=name, description=description, status='skipped'))

    def finish(self, success: bool) -> list[Path]:
        """Close the report. Returns the files written (none without a report dir)."""
        self.finished_at = datetime.now(timezone.utc)
        self.success = success
        if self.report_dir is None:
            return []
        return self.write(self.report_dir)

    @property
    def duration(self) -> float:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    @property
    def error(self) -> Optional[str]:
        """Message of the first failed phase, if any."""
        for phase in self.phases:
            if phase.status == 'failed' and phase.message:
                return phase.message
        return None

    @property
    def outputs(self) -> dict[str, Any]:
        """Outputs of every phase that ran, merged in phase order."""
        merged: dict[str, Any] = {}
        for phase in self.phases:
            merged.update(phase.outputs)
        return merged

    def to_dict(self, redact_environment: bool = False) -> dict:
        """Report as a JSON-serializable dict.

        Args:
            redact_environment: Replace cloned environment values with the
                sorted list of variable names
        """
        outputs = self.outputs
        if redact_environment and 'environment' in outputs:
            outputs['environment'] = sorted(outputs['environment'])

        data = {
            'goal': self.goal,
            'target': self.target,
            'params': {k: v for k, v in self.params.items() if _serializable(v)},
            'success': self.success,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'duration_seconds': round(self.duration, 1),
            'phases': [
                {
                    'name': p.name,
                    'status': p.status,
                    'message': p.message,
                    'duration': round(p.duration, 1),
                }
                for p in self.phases
            ],
            'outputs': outputs,
        }
        if not self.success and self.error:
            data['error'] = self.error
        return data

    def to_markdown(self) -> str:
        status = 'PASSED' if self.success else 'FAILED'
        started = self.started_at.strftime('%Y-%m-%d %H:%M:%S UTC') if self.started_at else 'N/A'
        lines = [
            f"# {self.goal} on {self.target}: {status}",
            "",
            f"Started {started}, took {self.duration:.1f}s.",
        ]
        if self.error:
            lines.extend(["", f"**Error**: {self.error}"])

        lines.extend([
            "",
            "| Phase | Status | Duration | Message |",
            "|-------|--------|----------|---------|",
        ])
        for p in self.phases:
            lines.append(f"| {p.name} | {p.status} | {p.duration:.1f}s | {p.message} |")

        outputs = self.outputs
        for key, heading in OUTPUT_HEADINGS.items():
            if key not in outputs:
                continue
            items = sorted(outputs[key]) if key == 'environment' else outputs[key]
            lines.extend(["", f"## {heading}", ""])
            lines.extend(f"- {item}" for item in items)
            if not items:
                lines.append("_none_")

        return '\n'.join(lines) + '\n'

    def write(self, report_dir: Path) -> list[Path]:
        """Write <goal>.<target>.<timestamp>.<status>.json|md into report_dir."""
        report_dir.mkdir(parents=True, exist_ok=True)
        stamp = (self.started_at or datetime.now(timezone.utc)).strftime('%Y%m%dT%H%M%SZ')
        status = 'passed' if self.success else 'failed'
        base = report_dir / f"{self.goal}.{self.target}.{stamp}.{status}"

        json_path = base.with_name(base.name + '.json')
        json_path.write_text(json.dumps(self.to_dict(redact_environment=True), indent=2), encoding='utf-8')
        md_path = base.with_name(base.name + '.md')
        md_path.write_text(self.to_markdown(), encoding='utf-8')
        return [json_path, md_path]


def _serializable(value: Any) -> bool:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return False
    return True
