"""Тесты диспетчера команд control surface на настоящем TaskManager."""
from unittest.mock import AsyncMock

from src.exceptions import CANCELLED_ERROR
from tests.test_worker.conftest import FakeAnalyzer, make_manager, make_snapshot


class TestAddCommands:
    """ADD_TASK / ADD_BATCH_TASKS."""

    async def test_add_task(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        result = await handle_command(manager, {"type": "ADD_TASK", "url": "https://a.com/"})
        await manager.wait_idle()

        assert result["success"] is True
        assert manager.tasks.get(result["task_id"]).status == "completed"

    async def test_add_task_invalid_url(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        result = await handle_command(manager, {"type": "ADD_TASK", "url": "not-a-url"})

        assert result == {"success": False, "error": "Invalid URL: not-a-url"}
        assert manager.tasks.tasks == {}

    async def test_add_batch_keeps_duplicates_in_order(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        await manager.pause()
        result = await handle_command(manager, {
            "type": "ADD_BATCH_TASKS",
            "urls": ["https://a.com/", "https://a.com/", "https://a.com/x"],
        })

        assert result["success"] is True
        assert len(set(result["task_ids"])) == 3
        urls = [manager.tasks.get(task_id).url for task_id in result["task_ids"]]
        assert urls == ["https://a.com/", "https://a.com/", "https://a.com/x"]

    async def test_add_batch_blank_url_rejected(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        await manager.pause()
        result = await handle_command(manager, {
            "type": "ADD_BATCH_TASKS",
            "urls": ["https://a.com/", ""],
        })

        assert result["success"] is False
        assert result["error"].startswith("Invalid URL")
        assert manager.tasks.tasks == {}

    async def test_add_batch_empty_rejected(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        result = await handle_command(manager, {"type": "ADD_BATCH_TASKS", "urls": []})

        assert result["success"] is False
        assert result["error"].startswith("Invalid message: urls")


class TestTaskCommands:
    """Команды над одной задачей."""

    async def test_cancel_accepts_camel_case(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        await manager.pause()
        task_id = await manager.add_task("https://a.com/")

        result = await handle_command(manager, {"type": "CANCEL_TASK", "taskId": task_id})

        assert result == {"success": True, "cancelled": True}
        assert manager.tasks.get(task_id).error == CANCELLED_ERROR

    async def test_retry_unknown_task(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        result = await handle_command(manager, {"type": "RETRY_TASK", "taskId": "task_missing"})

        assert result == {"success": False, "error": "Task not found: task_missing"}

    async def test_retry_pending_rejected(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        await manager.pause()
        task_id = await manager.add_task("https://a.com/")

        result = await handle_command(manager, {"type": "RETRY_TASK", "taskId": task_id})

        assert result["success"] is False
        assert "status: pending" in result["error"]

    async def test_delete_unknown_is_noop(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        result = await handle_command(manager, {"type": "DELETE_TASK", "task_id": "task_missing"})

        assert result == {"success": True, "deleted": False}

    async def test_edit_url(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        await manager.pause()
        task_id = await manager.add_task("https://a.com/")

        result = await handle_command(manager, {
            "type": "EDIT_TASK_URL", "taskId": task_id, "newUrl": "https://b.com/docs",
        })

        assert result["success"] is True
        assert result["task"]["domain"] == "b.com"
        assert result["task"]["title"] == "/docs"

    async def test_edit_url_missing_field(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        result = await handle_command(manager, {"type": "EDIT_TASK_URL", "taskId": "task_1"})

        assert result["success"] is False
        assert "newUrl" in result["error"]


class TestQueueCommands:
    """Очередь, счётчики, список."""

    async def test_pause_resume_and_state(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        assert await handle_command(manager, {"type": "PAUSE_QUEUE"}) == {"success": True}

        state = await handle_command(manager, {"type": "GET_QUEUE_STATE"})
        assert state["state"]["paused"] is True
        assert state["state"]["queue_length"] == 0

        await handle_command(manager, {"type": "RESUME_QUEUE"})
        state = await handle_command(manager, {"type": "GET_QUEUE_STATE"})
        assert state["state"]["paused"] is False

    async def test_get_tasks_and_stats(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        await manager.pause()
        await manager.add_task("https://a.com/1")
        await manager.add_task("https://a.com/2")

        tasks = await handle_command(manager, {"type": "GET_TASKS"})
        stats = await handle_command(manager, {"type": "GET_STATS"})

        assert [t["url"] for t in tasks["tasks"]] == ["https://a.com/2", "https://a.com/1"]
        assert stats["stats"] == {"total": 2, "pending": 2, "running": 0, "completed": 0, "failed": 0}

    async def test_clear_completed(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        await manager.add_task("https://a.com/")
        await manager.wait_idle()

        result = await handle_command(manager, {"type": "CLEAR_COMPLETED"})

        assert result == {"success": True, "removed": 1}


class TestAnalyzeSnapshot:
    """ANALYZE_SNAPSHOT."""

    async def test_by_snapshot_id(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        await manager.store.save_snapshot(make_snapshot("snapshot_7", title="Saved"))

        result = await handle_command(manager, {"type": "ANALYZE_SNAPSHOT", "snapshotId": "snapshot_7"})

        assert result["success"] is True
        assert result["format"] == "markdown"
        assert result["markdown"].startswith("# Saved")
        stored = await manager.store.load_snapshot("snapshot_7")
        assert stored.markdown == result["markdown"]

    async def test_inline_snapshot(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        snapshot = make_snapshot("snapshot_9", title="Inline")

        result = await handle_command(manager, {
            "type": "ANALYZE_SNAPSHOT", "snapshot": snapshot.model_dump(mode="json"),
        })

        assert result["success"] is True
        assert (tmp_path / "reports" / "Inline_style.md").exists()

    async def test_unknown_snapshot(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        result = await handle_command(manager, {"type": "ANALYZE_SNAPSHOT", "snapshotId": "snapshot_x"})

        assert result == {"success": False, "error": "Snapshot not found: snapshot_x"}

    async def test_requires_snapshot_or_id(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        result = await handle_command(manager, {"type": "ANALYZE_SNAPSHOT"})

        assert result["success"] is False

    async def test_analysis_error_reported(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path, analyzer=FakeAnalyzer(error="AI provider is not configured"))
        await manager.store.save_snapshot(make_snapshot("snapshot_1"))

        result = await handle_command(manager, {"type": "ANALYZE_SNAPSHOT", "snapshotId": "snapshot_1"})

        assert result == {"success": False, "error": "AI provider is not configured"}


class TestMalformedMessages:
    """Неизвестные и битые сообщения не бросают исключений."""

    async def test_unknown_type(self, tmp_path) -> None:
        from src.api.commands import handle_command

        result = await handle_command(make_manager(tmp_path), {"type": "REBOOT"})
        assert result == {"success": False, "error": "Unknown message type: REBOOT"}

    async def test_missing_type(self, tmp_path) -> None:
        from src.api.commands import handle_command

        result = await handle_command(make_manager(tmp_path), {"url": "https://a.com/"})
        assert result["success"] is False

    async def test_storage_failure_reported(self, tmp_path) -> None:
        from src.api.commands import handle_command

        manager = make_manager(tmp_path)
        manager.store.save_tasks = AsyncMock(side_effect=RuntimeError("db down"))

        result = await handle_command(manager, {"type": "ADD_TASK", "url": "https://a.com/"})

        assert result == {"success": False, "error": "db down"}
