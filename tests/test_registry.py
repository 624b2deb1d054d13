"""Tests for TaskRegistry: task registration and module loading."""

import sys

import pytest

from crontask.scheduler.models import Priority, TaskStatus
from crontask.scheduler.registry import (
    BaseCronTask,
    CronTask,
    FunctionTask,
    TaskPolicy,
    TaskRegistry,
    load_task_modules,
)


class DigestTask(BaseCronTask):
    policy = TaskPolicy(schedule="30 2 * * *", priority=Priority.LOW, editable=True)

    async def process(self) -> None:
        pass


class TestDecorator:
    def test_registers_function(self, registry: TaskRegistry):
        @registry.task("cleanup", schedule="0 3 * * *", priority=Priority.HIGH)
        async def cleanup() -> None:
            pass

        assert "cleanup" in registry
        task = registry.create("cleanup")
        assert isinstance(task, FunctionTask)
        assert task.get_schedule() == "0 3 * * *"
        assert task.default_policy().priority is Priority.HIGH

    def test_returns_original_function(self, registry: TaskRegistry):
        async def cleanup() -> None:
            pass

        assert registry.task("cleanup")(cleanup) is cleanup

    def test_policy_fields(self, registry: TaskRegistry):
        @registry.task(
            "report",
            status=TaskStatus.OFF,
            max_execution_seconds=30,
            allow_multiple_instances=True,
            editable=True,
        )
        async def report() -> None:
            pass

        policy = registry.create("report").default_policy()
        assert policy.schedule == "* * * * *"
        assert policy.status is TaskStatus.OFF
        assert policy.max_execution_seconds == 30
        assert policy.allow_multiple_instances is True
        assert policy.editable is True

    def test_rejects_sync_function(self, registry: TaskRegistry):
        with pytest.raises(TypeError, match="must be an async function"):

            @registry.task("sync")
            def sync() -> None:
                pass

        assert "sync" not in registry

    async def test_function_task_process_calls_function(self, registry: TaskRegistry):
        calls = []

        @registry.task("ping")
        async def ping() -> None:
            calls.append("ping")

        await registry.create("ping").process()
        assert calls == ["ping"]


class TestRegister:
    def test_registers_class_factory(self, registry: TaskRegistry):
        registry.register("digest", DigestTask)
        task = registry.create("digest")
        assert isinstance(task, DigestTask)
        assert isinstance(task, CronTask)
        assert task.get_schedule() == "30 2 * * *"

    def test_fresh_instance_each_time(self, registry: TaskRegistry):
        registry.register("digest", DigestTask)
        assert registry.create("digest") is not registry.create("digest")

    def test_duplicate_rejected(self, registry: TaskRegistry):
        registry.register("digest", DigestTask)
        with pytest.raises(ValueError, match="already registered"):
            registry.register("digest", DigestTask)

    def test_empty_id_rejected(self, registry: TaskRegistry):
        with pytest.raises(ValueError):
            registry.register("", DigestTask)

    def test_unknown_task(self, registry: TaskRegistry):
        assert registry.get("nope") is None
        with pytest.raises(KeyError):
            registry.create("nope")


class TestListing:
    def test_registration_order(self, registry: TaskRegistry):
        registry.register("b", DigestTask)
        registry.register("a", DigestTask)
        registry.register("c", DigestTask)
        assert registry.task_ids == ["b", "a", "c"]
        assert len(registry) == 3

    def test_get_returns_entry(self, registry: TaskRegistry):
        registry.register("digest", DigestTask)
        entry = registry.get("digest")
        assert entry.task_id == "digest"
        assert entry.factory is DigestTask


class TestBaseCronTask:
    async def test_process_must_be_overridden(self):
        with pytest.raises(NotImplementedError):
            await BaseCronTask().process()

    def test_default_policy(self):
        assert BaseCronTask().default_policy() == TaskPolicy()


class TestLoadTaskModules:
    def test_imports_modules(self, tmp_path, monkeypatch):
        (tmp_path / "my_cron_tasks.py").write_text("LOADED = True\n")
        monkeypatch.syspath_prepend(str(tmp_path))
        monkeypatch.delitem(sys.modules, "my_cron_tasks", raising=False)

        load_task_modules(["my_cron_tasks"])
        assert sys.modules["my_cron_tasks"].LOADED is True

    def test_missing_module_raises(self):
        with pytest.raises(ModuleNotFoundError):
            load_task_modules(["does_not_exist_anywhere"])
