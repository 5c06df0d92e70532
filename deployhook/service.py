"""
DeployService - the boundary used by the HTTP and CLI layers.

Owns the long-lived pieces and wires them together:
- AppRegistry (swapped wholesale on reload)
- RunGuard (lives for the process)
- DeploymentRunner, StepExecutor, LogStore
- A thread pool running deployments in the background

Usage:
    service = DeployService.from_config(config)
    deploy_id = service.acquire_and_run("shop", "production")
    ...
    entry = service.find_by_id(deploy_id)
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from deployhook.config import DeployhookConfig
from deployhook.errors import AlreadyRunningError
from deployhook.log_store import DEFAULT_QUERY_LIMIT, LogStore, QueryResult
from deployhook.registry import AppRegistry
from deployhook.run_guard import RunGuard
from deployhook.runner import DeploymentRunner
from deployhook.schemas import AppEnvironmentDefinition, LogEntry, RunRecord
from deployhook.step_executor import StepExecutor

logger = logging.getLogger(__name__)


class DeployIdGenerator:
    """
    Produces "<app>-<env>-<epoch ms>" ids.

    Stamps are strictly increasing within the process: two requests in
    the same millisecond get consecutive stamps.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ms = 0

    def __call__(self, app: str, env: str) -> str:
        with self._lock:
            stamp = int(self._clock() * 1000)
            if stamp <= self._last_ms:
                stamp = self._last_ms + 1
            self._last_ms = stamp
        return f"{app}-{env}-{stamp}"


class DeployService:
    """
    Trigger and query deployments.

    Args:
        registry: Initial app registry
        runner: Executes runs; its guard must be this service's guard
        log_store: Run log read by queries
        guard: Slot tracker shared with the runner
        max_workers: Size of the background thread pool
    """

    def __init__(
        self,
        registry: AppRegistry,
        runner: DeploymentRunner,
        log_store: LogStore,
        guard: RunGuard,
        max_workers: int = 4,
        id_generator: Optional[DeployIdGenerator] = None,
    ):
        self._registry = registry
        self.runner = runner
        self.log_store = log_store
        self.guard = guard
        self._new_id = id_generator or DeployIdGenerator()
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="deploy")

    @classmethod
    def from_config(cls, config: DeployhookConfig) -> "DeployService":
        guard = RunGuard()
        log_store = LogStore(config.logs_dir)
        executor = StepExecutor(shell_path=config.shell_path, timeout=config.step_timeout)
        runner = DeploymentRunner(executor, guard, log_store)
        return cls(
            registry=config.registry,
            runner=runner,
            log_store=log_store,
            guard=guard,
            max_workers=config.max_workers,
        )

    @property
    def registry(self) -> AppRegistry:
        return self._registry

    def reload(self, registry: AppRegistry) -> None:
        """Swap in a new registry. In-flight runs keep their definitions."""
        self._registry = registry
        logger.info(f"Registry reloaded: {len(registry)} apps")

    def resolve(self, app: str, env: str) -> AppEnvironmentDefinition:
        """Look up a definition or raise NotFoundError."""
        return self._registry.resolve(app, env)

    def _claim(self, app: str, env: str) -> tuple[str, AppEnvironmentDefinition]:
        definition = self.resolve(app, env)
        if not self.guard.try_acquire((app, env)):
            raise AlreadyRunningError(app, env)
        return self._new_id(app, env), definition

    def start(self, app: str, env: str) -> tuple[str, AppEnvironmentDefinition]:
        """
        Start a deployment in the background.

        Returns:
            (deploy_id, definition) for the run that was queued; the
            outcome is only visible in the run log

        Raises:
            NotFoundError: If the app or env is not configured
            AlreadyRunningError: If a run for (app, env) is in flight
        """
        deploy_id, definition = self._claim(app, env)

        try:
            future = self._pool.submit(self.runner.execute, deploy_id, app, env, definition)
        except RuntimeError:
            # Pool shut down; the runner will never release the slot
            self.guard.release((app, env))
            raise

        future.add_done_callback(self._log_unexpected)
        logger.info(f"{deploy_id} - Deployment queued")
        return deploy_id, definition

    def acquire_and_run(self, app: str, env: str) -> str:
        """Start a deployment in the background and return its deploy id."""
        deploy_id, _ = self.start(app, env)
        return deploy_id

    def run_sync(self, app: str, env: str) -> RunRecord:
        """
        Run a deployment in the calling thread and return its record.

        Raises:
            NotFoundError: If the app or env is not configured
            AlreadyRunningError: If a run for (app, env) is in flight
        """
        deploy_id, definition = self._claim(app, env)
        return self.runner.execute(deploy_id, app, env, definition)

    def query(
        self,
        limit: int = DEFAULT_QUERY_LIMIT,
        app: Optional[str] = None,
        env: Optional[str] = None,
        date: Optional[str] = None,
    ) -> QueryResult:
        return self.log_store.query(limit=limit, app=app, env=env, date=date)

    def find_by_id(self, deploy_id: str) -> Optional[LogEntry]:
        return self.log_store.find_by_id(deploy_id)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting runs; optionally wait for in-flight ones."""
        self._pool.shutdown(wait=wait)

    @staticmethod
    def _log_unexpected(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error(f"Background deployment crashed: {exc}", exc_info=exc)
