"""
DeploymentRunner - execute a deployment's steps in order.

Run lifecycle:
    pending -> running -> succeeded | failed

1. Create an in-progress RunRecord
2. Run each step through the StepExecutor, appending a StepResult
3. Stop at the first failing step; later steps never run
4. Finalize the record (status, end time, duration)
5. Release the RunGuard slot, whatever happened above
6. Append the record to the LogStore; write failures are only logged

execute() never raises. From the caller's side the run is over once the
record is finalized; persistence is best effort.
"""

import logging
import time

from deployhook.errors import ExecutionError, PersistenceError
from deployhook.log_store import LogStore
from deployhook.run_guard import RunGuard
from deployhook.schemas import (
    AppEnvironmentDefinition,
    RunRecord,
    RunStatus,
    StepResult,
    StepStatus,
)
from deployhook.step_executor import StepExecutor

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class DeploymentRunner:
    """
    Orchestrates one run at a time per call; safe to call from many threads.

    Args:
        executor: Runs individual step commands
        guard: Slot tracker; the slot for (app, env) is released on exit
        log_store: Destination for the finished RunRecord
    """

    def __init__(self, executor: StepExecutor, guard: RunGuard, log_store: LogStore):
        self.executor = executor
        self.guard = guard
        self.log_store = log_store

    def execute(
        self,
        deploy_id: str,
        app_name: str,
        env_name: str,
        definition: AppEnvironmentDefinition,
    ) -> RunRecord:
        """
        Run every step of a definition and persist the outcome.

        The caller is expected to hold the (app_name, env_name) slot.

        Returns:
            The finalized RunRecord
        """
        record = RunRecord(
            deploy_id=deploy_id,
            app=app_name,
            env=env_name,
            path=str(definition.working_directory),
        )

        try:
            self._run_steps(record, definition)
        except Exception as e:
            # Anything other than a step failure is a bug; still end the run cleanly
            logger.exception(f"{deploy_id} - Unexpected error during deployment")
            if not record.finished:
                record.finalize(RunStatus.FAILED, error=f"Internal error: {e}")
        finally:
            self.guard.release((app_name, env_name))

        try:
            self.log_store.append(record)
        except PersistenceError as e:
            logger.error(f"{deploy_id} - Failed to save run log: {e}")

        return record

    def _run_steps(self, record: RunRecord, definition: AppEnvironmentDefinition) -> None:
        deploy_id = record.deploy_id
        logger.info(
            f"{deploy_id} - Starting deployment of {record.app}.{record.env} "
            f"({len(definition.steps)} steps) in {record.path}"
        )

        for order, step in enumerate(definition.steps, start=1):
            logger.info(f"{deploy_id} - Executing: {step.name}")
            step_start = time.monotonic()

            try:
                result = self.executor.run(step.command, definition.working_directory)
            except ExecutionError as e:
                duration = _elapsed_ms(step_start)
                record.steps.append(StepResult(
                    order=order,
                    name=step.name,
                    command=step.command,
                    status=StepStatus.ERROR,
                    duration_ms=duration,
                    output=e.stdout,
                    stderr=e.stderr,
                    error=e.message,
                ))
                logger.error(f"{deploy_id} - [{step.name}] failed: {e.message}")

                record.finalize(RunStatus.FAILED, error=e.message)
                logger.error(f"{deploy_id} - Deployment failed ({record.duration_ms}ms)")
                return

            duration = _elapsed_ms(step_start)
            record.steps.append(StepResult(
                order=order,
                name=step.name,
                command=step.command,
                status=StepStatus.SUCCESS,
                duration_ms=duration,
                output=result.stdout,
                stderr=result.stderr,
            ))
            logger.info(f"{deploy_id} - [{step.name}] completed ({duration}ms)")

        record.finalize(RunStatus.SUCCESS)
        logger.info(f"{deploy_id} - Deployment completed successfully ({record.duration_ms}ms)")
