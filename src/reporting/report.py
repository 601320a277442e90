"""Run outcome collection and human-readable summary."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

PASSED = 'passed'
WARNED = 'warned'
FAILED = 'failed'
SKIPPED = 'skipped'


@dataclass
class StageResult:
    """Result of one stage."""
    name: str
    description: str
    status: str  # 'passed', 'warned', 'failed', 'skipped'
    message: str = ''
    duration: float = 0.0
    polls: list = field(default_factory=list)  # (description, outcome, elapsed)


@dataclass
class RunOutcome:
    """Aggregate of all stage results for one run. Not persisted."""
    stages: list[StageResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    aborted: bool = False
    status: dict = field(default_factory=dict)

    def start(self):
        """Mark run start."""
        self.started_at = datetime.now()

    def record(self, result: StageResult):
        self.stages.append(result)

    def finish(self, aborted: bool = False):
        self.finished_at = datetime.now()
        self.aborted = aborted

    @property
    def duration(self) -> float:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    @property
    def exit_code(self) -> int:
        return 1 if self.aborted else 0

    def by_status(self, status: str) -> list[StageResult]:
        return [s for s in self.stages if s.status == status]

    def summary_lines(self) -> list[str]:
        """Render a table of stage results."""
        headline = 'ABORTED' if self.aborted else 'COMPLETED'
        warned = len(self.by_status(WARNED))
        lines = [
            f"Deployment {headline} in {self.duration:.1f}s"
            + (f" ({warned} stage(s) did not converge)" if warned else ''),
            "",
            f"  {'Stage':<20} {'Status':<9} {'Duration':>9}  Message",
        ]
        for s in self.stages:
            marker = {PASSED: '✅', WARNED: '⚠️ ', FAILED: '❌', SKIPPED: '⏭️ '}.get(s.status, '❓')
            lines.append(f"  {s.name:<20} {marker} {s.status:<6} {s.duration:>8.1f}s  {s.message}")
        return lines

    def to_dict(self) -> dict:
        """Return outcome as dictionary for JSON output."""
        result = {
            'success': not self.aborted,
            'aborted': self.aborted,
            'duration_seconds': round(self.duration, 1),
            'stages': [
                {
                    'name': s.name,
                    'status': s.status,
                    'message': s.message,
                    'duration': round(s.duration, 1),
                    'polls': [
                        {'target': target, 'outcome': outcome, 'elapsed': round(elapsed, 1)}
                        for target, outcome, elapsed in s.polls
                    ],
                }
                for s in self.stages
            ],
        }

        if self.aborted:
            for s in self.stages:
                if s.status == FAILED and s.message:
                    result['error'] = s.message
                    break

        if self.status:
            try:
                json.dumps(self.status)
                result['status'] = self.status
            except (TypeError, ValueError):
                result['status'] = {k: str(v) for k, v in self.status.items()}

        return result
