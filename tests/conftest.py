"""Global pytest fixtures and configuration."""

import shutil
import sys
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from install_protocol.config import ProtocolConfig  # noqa: E402
from install_protocol.services.state_manager import StateManager  # noqa: E402


@pytest.fixture
def socket_dir():
    """Short-lived socket directory (kept short for AF_UNIX path limits)."""
    path = tempfile.mkdtemp(prefix="ipc-", dir="/tmp")
    yield Path(path)
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def protocol_config(socket_dir, tmp_path):
    """ProtocolConfig pointing at temporary directories with fast liveness timings."""
    return ProtocolConfig(
        socket_dir=str(socket_dir),
        state_dir=str(tmp_path / "state"),
        log_file=str(tmp_path / "logs" / "test.log"),
        ping_interval=0.05,
        alive_timeout=1.0,
    )


@pytest.fixture
def state_manager(tmp_path):
    """Fresh StateManager singleton writing under tmp_path."""
    StateManager._instance = None
    manager = StateManager()
    manager.state_dir = tmp_path / "state"
    yield manager
    StateManager._instance = None


@pytest.fixture
def mock_reporter():
    """Mock ReportService so no progress agent is needed."""
    reporter = MagicMock()
    reporter.report_stage = AsyncMock()
    return reporter
