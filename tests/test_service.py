"""Tests for DeployService: triggering, guarding and querying runs."""

import pytest

from deployhook.errors import AlreadyRunningError, AppNotFoundError, EnvironmentNotFoundError
from deployhook.registry import AppRegistry
from deployhook.schemas import RunStatus
from deployhook.service import DeployIdGenerator, DeployService


@pytest.fixture
def registry(workdir):
    return AppRegistry.from_dict({
        "shop": {
            "production": {"path": str(workdir), "steps": ["build", "restart"]},
            "staging": {"path": str(workdir), "steps": ["block"]},
        },
    })


@pytest.fixture
def service(registry, fake_runner, log_store, guard):
    svc = DeployService(registry, fake_runner, log_store, guard, max_workers=2)
    yield svc
    svc.shutdown(wait=True)


class TestDeployIdGenerator:

    def test_format(self):
        new_id = DeployIdGenerator(clock=lambda: 1700000000.123)
        assert new_id("shop", "production") == "shop-production-1700000000123"

    def test_same_millisecond_never_collides(self):
        new_id = DeployIdGenerator(clock=lambda: 1.0)
        ids = [new_id("shop", "production") for _ in range(5)]
        assert ids == [f"shop-production-{1000 + i}" for i in range(5)]

    def test_clock_going_backwards_stays_unique(self):
        ticks = iter([2.0, 1.0])
        new_id = DeployIdGenerator(clock=lambda: next(ticks))
        assert new_id("a", "b") == "a-b-2000"
        assert new_id("a", "b") == "a-b-2001"


class TestAcquireAndRun:

    def test_runs_in_background_and_persists(self, service, log_store):
        deploy_id = service.acquire_and_run("shop", "production")
        service.shutdown(wait=True)

        assert deploy_id.startswith("shop-production-")
        entry = service.find_by_id(deploy_id)
        assert entry is not None
        assert [s.command for s in entry.steps] == ["build", "restart"]
        assert not service.guard.is_running(("shop", "production"))

    def test_start_returns_claimed_definition(self, service):
        deploy_id, definition = service.start("shop", "production")
        service.shutdown(wait=True)

        assert deploy_id.startswith("shop-production-")
        assert [s.command for s in definition.steps] == ["build", "restart"]
        assert service.find_by_id(deploy_id).steps[0].command == "build"

    def test_unknown_app(self, service):
        with pytest.raises(AppNotFoundError):
            service.acquire_and_run("ghost", "production")
        assert service.guard.active() == []

    def test_unknown_env(self, service):
        with pytest.raises(EnvironmentNotFoundError):
            service.acquire_and_run("shop", "qa")
        assert service.guard.active() == []

    def test_second_trigger_rejected_while_running(self, service, fake_executor):
        first = service.acquire_and_run("shop", "staging")

        with pytest.raises(AlreadyRunningError):
            service.acquire_and_run("shop", "staging")

        # other environments are unaffected
        other = service.acquire_and_run("shop", "production")
        assert other != first

        fake_executor.release()
        service.shutdown(wait=True)
        assert service.guard.active() == []
        assert service.find_by_id(first) is not None

    def test_slot_reusable_after_run(self, registry, fake_runner, log_store, guard):
        svc = DeployService(registry, fake_runner, log_store, guard)
        svc.run_sync("shop", "production")
        record = svc.run_sync("shop", "production")
        assert record.status == RunStatus.SUCCESS
        svc.shutdown()

    def test_pool_shut_down_releases_slot(self, service):
        service.shutdown(wait=True)
        with pytest.raises(RuntimeError):
            service.acquire_and_run("shop", "production")
        assert service.guard.active() == []


class TestRunSync:

    def test_returns_finished_record(self, service):
        record = service.run_sync("shop", "production")

        assert record.status == RunStatus.SUCCESS
        assert len(record.steps) == 2
        assert service.query().total == 1

    def test_rejected_when_running(self, service, guard):
        guard.try_acquire(("shop", "production"))
        with pytest.raises(AlreadyRunningError):
            service.run_sync("shop", "production")


class TestQueryAndReload:

    def test_query_passes_filters(self, service):
        service.run_sync("shop", "production")

        assert service.query(app="shop", env="production").total == 1
        assert service.query(app="api").total == 0

    def test_reload_swaps_registry(self, service, workdir):
        fresh = AppRegistry.from_dict({"api": {"production": {"path": str(workdir), "steps": ["make"]}}})

        service.reload(fresh)

        assert service.registry is fresh
        with pytest.raises(AppNotFoundError):
            service.acquire_and_run("shop", "production")
        service.run_sync("api", "production")
