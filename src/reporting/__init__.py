"""Run outcome reporting."""

from reporting.report import RunOutcome, StageResult, PASSED, WARNED, FAILED, SKIPPED

__all__ = ['RunOutcome', 'StageResult', 'PASSED', 'WARNED', 'FAILED', 'SKIPPED']
