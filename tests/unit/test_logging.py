"""Unit tests for utils/logging.py."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from install_protocol.utils.logging import BundleContextFilter, role_log_file, setup_logger


@pytest.fixture
def logger_name(request):
    """Unique logger tree per test, with handlers removed afterwards."""
    name = f"ip_test.{request.node.name}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


@pytest.mark.unit
class TestRoleLogFile:
    """Test per-process log file naming."""

    def test_role_appended_to_stem(self):
        assert role_log_file("./logs/install_protocol.log", "installer") == Path(
            "./logs/install_protocol-installer.log"
        )

    def test_missing_suffix_gets_log(self):
        assert role_log_file("/var/log/ip", "updater") == Path("/var/log/ip-updater.log")

    def test_roles_never_share_a_file(self):
        assert role_log_file("a.log", "installer") != role_log_file("a.log", "updater")


@pytest.mark.unit
class TestSetupLogger:
    """Test setup_logger."""

    def test_creates_log_directory(self, tmp_path, logger_name):
        log_dir = tmp_path / "new_logs" / "subdir"

        setup_logger(str(log_dir / "ip.log"), "installer", name=logger_name)

        assert (log_dir / "ip-installer.log").exists()

    def test_rotating_and_console_handlers(self, tmp_path, logger_name):
        logger = setup_logger(
            str(tmp_path / "ip.log"), "updater", name=logger_name, backup_count=5
        )

        file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        console_handlers = [
            h for h in logger.handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        ]
        assert len(file_handlers) == 1
        assert file_handlers[0].backupCount == 5
        assert len(console_handlers) == 1
        assert logger.level == logging.INFO

    def test_second_call_keeps_handlers(self, tmp_path, logger_name):
        first = setup_logger(str(tmp_path / "ip.log"), "installer", name=logger_name)
        count = len(first.handlers)

        second = setup_logger(str(tmp_path / "ip.log"), "installer", name=logger_name)

        assert first is second
        assert len(second.handlers) == count

    def test_component_lines_carry_bundle_identifier(self, tmp_path, logger_name):
        logger = setup_logger(
            str(tmp_path / "ip.log"), "installer", "com.example.App", name=logger_name
        )

        logging.getLogger(f"{logger_name}.session").warning("stage rejected")
        for handler in logger.handlers:
            handler.flush()

        line = (tmp_path / "ip-installer.log").read_text().strip()
        assert f"{logger_name}.session [com.example.App]: stage rejected" in line
        assert "[WARNING]" in line


@pytest.mark.unit
class TestBundleContextFilter:
    """Test BundleContextFilter."""

    def test_placeholder_without_identifier(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)

        assert BundleContextFilter(None).filter(record)
        assert record.bundle_identifier == "-"
