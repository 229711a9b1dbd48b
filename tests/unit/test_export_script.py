"""Tests for the export script.

_export() builds its SyncService lazily through the factory, so the factory
is patched at its source module path.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tasksync.scripts.export import _export, build_parser, main
from tasksync.sync.exporter import ExportReport, TableExportResult


def _service(report: ExportReport):
    service = MagicMock()
    service.store.bootstrap = AsyncMock()
    service.remote.aclose = AsyncMock()
    service.export_all = AsyncMock(return_value=report)
    return service


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.clear_remote_first is False
        assert args.skip_existing is True
        assert args.batch_size is None

    def test_flags(self):
        args = build_parser().parse_args(
            ["--clear-remote-first", "--no-skip-existing", "--batch-size", "25"]
        )
        assert args.clear_remote_first is True
        assert args.skip_existing is False
        assert args.batch_size == 25


class TestExport:
    @pytest.mark.asyncio
    async def test_passes_options_and_closes_remote(self):
        report = ExportReport(success=True, total_exported=3,
                              tables={"projects": TableExportResult(exported=3)})
        service = _service(report)

        with patch("tasksync.sync.factory.build_sync_service", return_value=service):
            ok = await _export(clear_remote_first=True, skip_existing=False, batch_size=5)

        assert ok is True
        service.store.bootstrap.assert_awaited_once()
        kwargs = service.export_all.await_args.kwargs
        assert kwargs["clear_remote_first"] is True
        assert kwargs["skip_existing"] is False
        assert kwargs["batch_size"] == 5
        service.remote.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_report_returns_false(self):
        service = _service(ExportReport(success=False, error="No connection to remote store"))
        with patch("tasksync.sync.factory.build_sync_service", return_value=service):
            assert await _export(False, True, 10) is False

    def test_main_exits_non_zero_on_failure(self):
        service = _service(ExportReport(success=False, error="offline"))
        with patch("tasksync.sync.factory.build_sync_service", return_value=service):
            with pytest.raises(SystemExit) as exc_info:
                main([])
        assert exc_info.value.code == 1

    def test_main_configures_logging(self):
        """The installed console script enters through main(), so logging is set up there."""
        service = _service(ExportReport(success=True))
        with patch("tasksync.sync.factory.build_sync_service", return_value=service), \
             patch("tasksync.scripts.export.logging.basicConfig") as basic_config:
            main(["--batch-size", "3"])
        basic_config.assert_called_once()
        assert service.export_all.await_args.kwargs["batch_size"] == 3
