import logging

import pytest

from fiscal_sync.logging.logger import Log


@pytest.fixture()
def captured(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    caplog.set_level(logging.DEBUG, logger="fiscal_sync")
    return caplog


class TestLog:
    def test_configure_sets_level(self) -> None:
        Log.configure("warning")
        assert Log._logger.level == logging.WARNING
        Log.configure("INFO")

    def test_configure_adds_single_handler(self) -> None:
        Log.configure("INFO")
        Log.configure("INFO")
        assert len(Log._logger.handlers) == 1

    def test_levels_are_forwarded(self, captured: pytest.LogCaptureFixture) -> None:
        Log.debug("d")
        Log.info("i")
        Log.warning("w")
        Log.error("e")

        levels = [(r.levelname, r.getMessage()) for r in captured.records]
        assert levels == [("DEBUG", "d"), ("INFO", "i"), ("WARNING", "w"), ("ERROR", "e")]

    def test_extra_fields_are_attached(self, captured: pytest.LogCaptureFixture) -> None:
        Log.info("tenant synced", tenant_id=7)
        assert captured.records[-1].tenant_id == 7

    def test_exception_includes_traceback(self, captured: pytest.LogCaptureFixture) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            Log.exception("failed")

        record = captured.records[-1]
        assert record.levelname == "ERROR"
        assert record.exc_info is not None
