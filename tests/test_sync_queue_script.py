"""
Tests for the queue maintenance command.
"""
from attendance_sync.exceptions import ApplicationError
from attendance_sync.scripts.sync_queue import build_parser, main


class TestSyncQueueScript:

    def test_default_is_status(self, app, services, make_payload, capsys):
        services.queue_store.enqueue(make_payload())

        stats = main([], app=app)

        assert stats["pendingCount"] == 1
        assert "OFFLINE QUEUE STATUS" in capsys.readouterr().out

    def test_list(self, app, services, make_payload, capsys):
        services.queue_store.enqueue(make_payload())
        services.queue_store.enqueue(make_payload())

        groups = main(["--list"], app=app)

        assert len(groups) == 1
        assert "2 copies" in capsys.readouterr().out

    def test_sync(self, app, services, make_payload):
        services.queue_store.enqueue(make_payload())

        result = main(["--sync"], app=app)

        assert result["success"] == 1

    def test_retry_failed(self, app, services, mock_api, make_payload, capsys):
        services.queue_store.enqueue(make_payload())
        mock_api.save_attendance.side_effect = ApplicationError("bad", status_code=400)
        main(["--sync"], app=app)

        mock_api.save_attendance.side_effect = None
        result = main(["--retry-failed"], app=app)

        assert result["success"] == 1
        assert "Cleared 1 failed item(s)" in capsys.readouterr().out

    def test_delete(self, app, services, make_payload):
        item_id = services.queue_store.enqueue(make_payload())
        services.queue_store.enqueue(make_payload())

        assert main(["--delete", str(item_id)], app=app) == 2
        assert main(["--delete", str(item_id)], app=app) == 0

    def test_clear_all(self, app, services, make_payload, capsys):
        item_id = services.queue_store.enqueue(make_payload())
        services.failed_items.add(item_id)

        removed = main(["--clear-all"], app=app)

        assert removed == {"queue": 1, "failed": 1, "cache": 0}
        assert services.queue_store.stats()["pendingCount"] == 0
        assert "Removed 1 queued" in capsys.readouterr().out

    def test_clear_all_refused_while_syncing(self, app, services, make_payload, capsys):
        services.queue_store.enqueue(make_payload())

        with services.orchestrator.lock.acquire_sync_lock("attendance-sync:periodic"):
            assert main(["--clear-all"], app=app) is None

        assert services.queue_store.stats()["pendingCount"] == 1
        assert "[WARNING]" in capsys.readouterr().out

    def test_options_are_exclusive(self):
        parser = build_parser()
        args = parser.parse_args(["--delete", "3"])
        assert args.delete == 3
        assert args.sync is False
