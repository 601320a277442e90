"""Deployment sequencer.

Runs a fixed, linear list of stages. Each stage optionally applies something,
then blocks on its readiness waiters in order. What happens when a stage does
not converge is decided by its FailurePolicy:

- ABORT: stop the run; the process exits non-zero
- WARN_AND_CONTINUE: log a warning and move on to the next stage

There is no outer retry of a stage and no state carried between runs; a
re-run starts from the first stage and relies on every action being
idempotent.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from common import ActionResult
from config import DeployConfig
from reporting import RunOutcome, StageResult, PASSED, WARNED, FAILED, SKIPPED

logger = logging.getLogger(__name__)


class FailurePolicy(Enum):
    ABORT = 'abort'
    WARN_AND_CONTINUE = 'warn_and_continue'


@runtime_checkable
class Action(Protocol):
    """Protocol for stage apply actions."""
    name: str

    def run(self, config: DeployConfig, context: Any) -> ActionResult:
        ...


@dataclass
class DeployContext:
    """Values resolved by earlier stages and consumed by later ones."""
    cluster_domain: str = ''
    platform_version: str = ''
    feature_gates_applied: bool = False
    serving_installed: bool = False
    audience: str = ''
    values: dict = field(default_factory=dict)

    def update(self, updates: dict):
        """Merge an ActionResult's context_updates."""
        for key, value in (updates or {}).items():
            if key != 'values' and hasattr(self, key):
                setattr(self, key, value)
            else:
                self.values[key] = value

    def env(self) -> dict:
        """Environment for manifest rendering."""
        env = dict(os.environ)
        if self.cluster_domain:
            env['CLUSTER_DOMAIN'] = self.cluster_domain
        return env


@dataclass(frozen=True)
class StageSpec:
    """One step of the deployment sequence. Immutable during a run."""
    name: str
    description: str
    action: Optional[Action] = None
    waits: tuple = ()
    policy: FailurePolicy = FailurePolicy.WARN_AND_CONTINUE


class Sequencer:
    """Executes stages strictly in order."""

    def __init__(
        self,
        stages: list[StageSpec],
        config: DeployConfig,
        skip_stages: Optional[list[str]] = None,
        dry_run: bool = False,
        context: Optional[DeployContext] = None,
    ):
        self.stages = stages
        self.config = config
        self.skip_stages = skip_stages or []
        required = [s.name for s in stages if s.policy is FailurePolicy.ABORT and s.name in self.skip_stages]
        if required:
            raise ValueError(f"Cannot skip required stage(s): {', '.join(required)}")
        self.dry_run = dry_run
        self.context = context or DeployContext()
        self.outcome = RunOutcome()

    def preview(self) -> RunOutcome:
        """Show what would be executed without running."""
        print("")
        print("═══════════════════════════════════════════════════════════════")
        print("  DRY-RUN: MaaS platform deployment")
        print(f"  Project: {self.config.project_root}")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        stage_count = 0
        skip_count = 0
        for stage in self.stages:
            if stage.name in self.skip_stages:
                print(f"  [SKIP] {stage.name}: {stage.description}")
                skip_count += 1
            else:
                print(f"  [ OK ] {stage.name}: {stage.description}")
                stage_count += 1
            print(f"         Policy: {stage.policy.value}")
            if stage.action is not None:
                print(f"         Action: {type(stage.action).__name__} ({stage.action.name})")
            for waiter in stage.waits:
                print(f"         Wait: {waiter.describe()} (timeout: {waiter.spec().timeout:g}s)")
            print("")

        print("═══════════════════════════════════════════════════════════════")
        print(f"  Summary: {stage_count} stages to execute, {skip_count} to skip")
        print("  Mode: DRY-RUN (no changes made)")
        print("═══════════════════════════════════════════════════════════════")
        print("")
        return self.outcome

    def run(self) -> RunOutcome:
        """Run all stages. Returns the aggregated outcome."""
        if self.dry_run:
            return self.preview()

        logger.info(f"Starting deployment ({len(self.stages)} stages)")
        self.outcome.start()
        start_time = time.time()
        aborted = False

        for index, stage in enumerate(self.stages, 1):
            if stage.name in self.skip_stages:
                logger.info(f"Skipping stage: {stage.name}")
                self.outcome.record(StageResult(stage.name, stage.description, SKIPPED))
                continue

            logger.info(f"[{index}/{len(self.stages)}] {stage.name} - {stage.description}")
            result = self._run_stage(stage)
            self.outcome.record(result)

            if result.status == FAILED:
                logger.error(f"Stage {stage.name} failed: {result.message}")
                logger.error("Aborting deployment")
                aborted = True
                break
            if result.status == WARNED:
                logger.warning(f"Stage {stage.name} did not converge, continuing: {result.message}")
            else:
                logger.info(f"Stage {stage.name} passed")

        logger.info(f"Deployment finished in {time.time() - start_time:.1f}s")
        self.outcome.status = self.context.values.get('status', {})
        self.outcome.finish(aborted)
        return self.outcome

    def _run_stage(self, stage: StageSpec) -> StageResult:
        """Apply, then wait. Failure status depends on stage.policy."""
        start = time.time()
        abort_on_failure = stage.policy is FailurePolicy.ABORT
        problems = []
        message = ''
        polls = []

        if stage.action is not None:
            try:
                result = stage.action.run(self.config, self.context)
            except Exception as e:
                logger.exception(f"Stage {stage.name} raised exception")
                result = ActionResult(success=False, message=str(e))
            if result.success:
                self.context.update(result.context_updates)
                message = result.message
            else:
                problems.append(result.message or 'action failed')

        # Warn stages still wait after a failed apply
        if not (problems and abort_on_failure):
            for waiter in stage.waits:
                try:
                    poll_result = waiter.wait()
                except Exception as e:
                    logger.exception(f"Waiting for {waiter.describe()} raised exception")
                    problems.append(f"{waiter.describe()}: {e}")
                    if abort_on_failure:
                        break
                    continue
                polls.append((waiter.describe(), poll_result.outcome.value, poll_result.elapsed))
                if not poll_result.ok:
                    detail = f" ({poll_result.detail})" if poll_result.detail else ''
                    problems.append(f"{waiter.describe()} {poll_result.outcome.value}{detail}")
                    if abort_on_failure:
                        break

        duration = time.time() - start
        if not problems:
            return StageResult(stage.name, stage.description, PASSED, message, duration, polls)
        status = FAILED if abort_on_failure else WARNED
        return StageResult(stage.name, stage.description, status, '; '.join(problems), duration, polls)


def stage_names(stages: list[StageSpec]) -> list[str]:
    return [s.name for s in stages]
