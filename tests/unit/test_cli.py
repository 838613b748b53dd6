from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from fiscal_sync.cli import cli
from fiscal_sync.database.models import ProviderKind, SyncLogRecord, SyncLogStatus, TenantRecord
from fiscal_sync.ingestion.exceptions import IngestionError
from fiscal_sync.ingestion.models import IngestionFailure, IngestionResult
from fiscal_sync.sync.exceptions import SyncAlreadyRunningError
from fiscal_sync.sync.models import SyncOutcome


@pytest.fixture()
def services(tenant: TenantRecord) -> MagicMock:
    services = MagicMock()
    services.tenant_repo.find_by_id.return_value = tenant
    return services


@pytest.fixture()
def run_cli(services: MagicMock):
    """Invoke the CLI with the database and service wiring mocked out."""

    def _run(*args: str):
        with patch("fiscal_sync.cli.Database") as mock_db_cls, patch(
            "fiscal_sync.cli.build_services", return_value=services
        ):
            result = CliRunner().invoke(cli, list(args))
            return result, mock_db_cls.from_settings.return_value

    return _run


class TestImportCommand:
    def test_imports_directory(self, run_cli, services: MagicMock, tmp_path: Path) -> None:
        (tmp_path / "a.xml").write_bytes(b"<a/>")
        (tmp_path / "b.txt").write_bytes(b"text")
        services.pipeline.ingest.return_value = IngestionResult(
            succeeded=["a.xml"],
            failed=[IngestionFailure("b.txt", "unsupported file extension")],
        )

        result, db = run_cli("import", str(tmp_path), "--tenant", "1")

        assert result.exit_code == 0
        assert "Imported 1 of 2 files (1 failed)" in result.output
        tenant_id, documents = services.pipeline.ingest.call_args.args
        assert tenant_id == 1
        assert [d.name for d in documents] == ["a.xml", "b.txt"]
        db.close.assert_called_once()

    def test_empty_directory(self, run_cli, services: MagicMock, tmp_path: Path) -> None:
        result, _db = run_cli("import", str(tmp_path), "--tenant", "1")

        assert result.exit_code == 0
        assert "No files found" in result.output
        services.pipeline.ingest.assert_not_called()

    def test_batch_rejection_is_reported(
        self, run_cli, services: MagicMock, tmp_path: Path
    ) -> None:
        (tmp_path / "a.xml").write_bytes(b"<a/>")
        services.pipeline.ingest.side_effect = IngestionError("Tenant 1 not found")

        result, _db = run_cli("import", str(tmp_path), "--tenant", "1")

        assert result.exit_code == 1
        assert "Tenant 1 not found" in result.output

    def test_unknown_tenant(self, run_cli, services: MagicMock, tmp_path: Path) -> None:
        services.tenant_repo.find_by_id.return_value = None

        result, _db = run_cli("import", str(tmp_path), "--tenant", "9")

        assert result.exit_code == 1
        assert "Tenant 9 not found" in result.output


class TestSyncCommand:
    def test_prints_outcomes(self, run_cli, services: MagicMock) -> None:
        services.scheduler.trigger.return_value = [
            SyncOutcome(ProviderKind.NSU, SyncLogStatus.COMPLETED, new=3, updated=1),
            SyncOutcome(ProviderKind.WINDOW, SyncLogStatus.ERROR, error="timeout"),
        ]

        result, _db = run_cli("sync", "--tenant", "1")

        assert result.exit_code == 0
        assert "nsu: completed, 3 new, 1 existing, 0 failed" in result.output
        assert "window: error, 0 new, 0 existing, 0 failed (timeout)" in result.output

    def test_already_running(self, run_cli, services: MagicMock) -> None:
        services.scheduler.trigger.side_effect = SyncAlreadyRunningError("busy")

        result, _db = run_cli("sync", "--tenant", "1")

        assert result.exit_code == 1
        assert "busy" in result.output


class TestRecoverCommand:
    def test_passes_since_date(self, run_cli, services: MagicMock) -> None:
        services.cursor_manager.mark_for_recovery.return_value = datetime(
            2024, 1, 9, tzinfo=timezone.utc
        )

        result, _db = run_cli("recover", "--tenant", "1", "--since", "2024-01-10")

        assert result.exit_code == 0
        assert "window restarts at 2024-01-09" in result.output
        tenant_id, since = services.cursor_manager.mark_for_recovery.call_args.args
        assert tenant_id == 1
        assert since == datetime(2024, 1, 10)


class TestHistoryCommand:
    def test_lists_runs(self, run_cli, services: MagicMock) -> None:
        services.sync_log_repo.recent.return_value = [
            SyncLogRecord(
                id=4,
                tenant_id=1,
                provider_kind=ProviderKind.WINDOW,
                status=SyncLogStatus.ERROR,
                error_message="timeout",
                started_at=datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc),
            )
        ]

        result, _db = run_cli("history", "--tenant", "1", "--limit", "5")

        assert result.exit_code == 0
        assert "#4 2024-06-10T12:00:00+00:00 window error" in result.output
        assert "error=timeout" in result.output
        services.sync_log_repo.recent.assert_called_once_with(1, 5)


class TestHealthCommand:
    def test_ok(self, run_cli, services: MagicMock) -> None:
        services.db.ping.return_value = True

        result, _db = run_cli("health")

        assert result.exit_code == 0
        assert "database: ok" in result.output

    def test_unreachable(self, run_cli, services: MagicMock) -> None:
        services.db.ping.return_value = False

        result, _db = run_cli("health")

        assert result.exit_code == 1
        assert "database: unreachable" in result.output
