"""Unit tests for ProtocolSession."""

import pytest

from install_protocol.exceptions import ProtocolViolation
from install_protocol.models.installation import ExtractionProgress
from install_protocol.models.messages import (
    InstallerMessage,
    InstallerMessageKind as Kind,
    UpdaterMessage,
    UpdaterMessageKind,
)
from install_protocol.models.status import LifecycleState
from install_protocol.protocol.session import ProtocolSession


def _msg(kind, payload=b""):
    return InstallerMessage(kind=kind, payload=payload)


FULL_SEQUENCE = [
    Kind.NOT_STARTED,
    Kind.EXTRACTION_STARTED,
    Kind.EXTRACTED_ARCHIVE_WITH_PROGRESS,
    Kind.EXTRACTED_ARCHIVE_WITH_PROGRESS,
    Kind.VALIDATION_STARTED,
    Kind.INSTALLATION_STARTED_STAGE1,
    Kind.INSTALLATION_FINISHED_STAGE1,
    Kind.INSTALLATION_FINISHED_STAGE2,
    Kind.INSTALLATION_FINISHED_STAGE3,
]


@pytest.mark.unit
class TestProtocolSession:
    """Test lifecycle transitions driven by installer messages."""

    @pytest.fixture
    def session(self):
        return ProtocolSession("com.example.App")

    def test_initial_state(self, session):
        assert session.state == LifecycleState.IDLE
        assert session.last_kind is None
        assert session.progress == 0.0
        assert session.error is None
        assert not session.is_terminal

    def test_full_sequence_reaches_finished(self, session):
        expected_states = [
            LifecycleState.AWAITING_INSTALLATION_DATA,
            LifecycleState.EXTRACTING,
            LifecycleState.EXTRACTING,
            LifecycleState.EXTRACTING,
            LifecycleState.VALIDATING,
            LifecycleState.INSTALLING_STAGE1,
            LifecycleState.INSTALLING_STAGE2,
            LifecycleState.INSTALLING_STAGE3,
            LifecycleState.FINISHED,
        ]

        states = [session.receive_installer_message(_msg(kind)) for kind in FULL_SEQUENCE]

        assert states == expected_states
        assert session.is_terminal
        assert not session.aborted

    def test_extraction_failure_reaches_failed(self, session):
        for kind in (Kind.NOT_STARTED, Kind.EXTRACTION_STARTED, Kind.ARCHIVE_EXTRACTION_FAILED):
            session.receive_installer_message(_msg(kind))

        assert session.state == LifecycleState.FAILED
        assert session.error.startswith("EXTRACTION_FAILED")
        assert not session.aborted

    def test_stage_after_failure_rejected(self, session):
        for kind in (Kind.NOT_STARTED, Kind.EXTRACTION_STARTED, Kind.ARCHIVE_EXTRACTION_FAILED):
            session.receive_installer_message(_msg(kind))

        with pytest.raises(ProtocolViolation):
            session.receive_installer_message(_msg(Kind.VALIDATION_STARTED))
        assert session.state == LifecycleState.FAILED

    def test_restart_after_failure(self, session):
        for kind in (Kind.NOT_STARTED, Kind.EXTRACTION_STARTED, Kind.ARCHIVE_EXTRACTION_FAILED):
            session.receive_installer_message(_msg(kind))

        state = session.receive_installer_message(_msg(Kind.NOT_STARTED))

        assert state == LifecycleState.AWAITING_INSTALLATION_DATA
        assert session.error is None

    def test_ping_never_changes_state(self, session):
        session.receive_installer_message(_msg(Kind.NOT_STARTED))
        session.receive_installer_message(_msg(Kind.EXTRACTION_STARTED))

        state = session.receive_installer_message(_msg(Kind.ALIVE_PING))

        assert state == LifecycleState.EXTRACTING
        assert session.last_kind == Kind.EXTRACTION_STARTED

    def test_ping_in_idle(self, session):
        assert session.receive_installer_message(_msg(Kind.ALIVE_PING)) == LifecycleState.IDLE
        assert session.last_kind is None

    def test_regression_aborts_session(self, session):
        for kind in FULL_SEQUENCE[:6]:
            session.receive_installer_message(_msg(kind))

        with pytest.raises(ProtocolViolation):
            session.receive_installer_message(_msg(Kind.EXTRACTION_STARTED))

        assert session.state == LifecycleState.FAILED
        assert session.aborted
        assert session.error.startswith("PROTOCOL_VIOLATION")

    def test_aborted_session_never_heals(self, session):
        session.receive_installer_message(_msg(Kind.NOT_STARTED))
        with pytest.raises(ProtocolViolation):
            session.receive_installer_message(_msg(Kind.NOT_STARTED))

        with pytest.raises(ProtocolViolation):
            session.receive_installer_message(_msg(Kind.EXTRACTION_STARTED))
        # Pings are still tolerated
        assert session.receive_installer_message(_msg(Kind.ALIVE_PING)) == LifecycleState.FAILED

    def test_first_message_may_skip_not_started(self, session):
        assert session.receive_installer_message(_msg(Kind.EXTRACTION_STARTED)) == (
            LifecycleState.EXTRACTING
        )

    def test_failure_as_first_message_rejected(self, session):
        with pytest.raises(ProtocolViolation):
            session.receive_installer_message(_msg(Kind.ARCHIVE_EXTRACTION_FAILED))

    def test_message_after_finished_rejected(self, session):
        for kind in FULL_SEQUENCE:
            session.receive_installer_message(_msg(kind))

        with pytest.raises(ProtocolViolation):
            session.receive_installer_message(_msg(Kind.INSTALLATION_FINISHED_STAGE3))

    def test_progress_payload_tracked(self, session):
        session.receive_installer_message(_msg(Kind.EXTRACTION_STARTED))
        session.receive_installer_message(
            _msg(Kind.EXTRACTED_ARCHIVE_WITH_PROGRESS, ExtractionProgress(fraction=0.25).to_payload())
        )
        session.receive_installer_message(
            _msg(Kind.EXTRACTED_ARCHIVE_WITH_PROGRESS, ExtractionProgress(fraction=0.75).to_payload())
        )

        assert session.progress == 0.75

    def test_malformed_progress_aborts_session(self, session):
        session.receive_installer_message(_msg(Kind.EXTRACTION_STARTED))

        with pytest.raises(ProtocolViolation, match="Malformed progress payload"):
            session.receive_installer_message(_msg(Kind.EXTRACTED_ARCHIVE_WITH_PROGRESS, b"{oops"))

        assert session.state == LifecycleState.FAILED
        assert session.aborted
        assert session.error.startswith("PROTOCOL_VIOLATION")
        assert session.last_kind == Kind.EXTRACTION_STARTED

    def test_out_of_range_progress_aborts_session(self, session):
        session.receive_installer_message(_msg(Kind.EXTRACTION_STARTED))

        with pytest.raises(ProtocolViolation):
            session.receive_installer_message(
                _msg(Kind.EXTRACTED_ARCHIVE_WITH_PROGRESS, b'{"fraction": 7}')
            )
        assert session.state == LifecycleState.FAILED

    def test_fail_marks_aborted(self, session):
        session.receive_installer_message(_msg(Kind.EXTRACTION_STARTED))

        session.fail("PEER_UNRESPONSIVE: gone")

        assert session.state == LifecycleState.FAILED
        assert session.aborted
        with pytest.raises(ProtocolViolation):
            session.receive_installer_message(_msg(Kind.VALIDATION_STARTED))
        assert session.error == "PEER_UNRESPONSIVE: gone"

    def test_reset(self, session):
        session.receive_installer_message(_msg(Kind.EXTRACTION_STARTED))
        session.reset()

        assert session.state == LifecycleState.IDLE
        assert session.last_kind is None


@pytest.mark.unit
class TestUpdaterCommands:
    """Test updater commands and the resume precondition."""

    @pytest.fixture
    def session(self):
        return ProtocolSession("com.example.App", role="installer")

    def test_installation_data_recorded(self, session):
        session.receive_updater_message(UpdaterMessage(kind=UpdaterMessageKind.INSTALLATION_DATA))

        assert session.installation_data_received
        assert session.state == LifecycleState.IDLE

    def test_resume_without_prior_stage1_rejected(self, session):
        resume = UpdaterMessage(kind=UpdaterMessageKind.RESUME_INSTALLATION_TO_STAGE2)

        with pytest.raises(ProtocolViolation, match="stage 1 was never completed"):
            session.receive_updater_message(resume, stage1_previously_completed=False)
        assert session.state == LifecycleState.IDLE

    def test_resume_with_prior_stage1(self, session):
        session.receive_installer_message(_msg(Kind.NOT_STARTED))
        resume = UpdaterMessage(kind=UpdaterMessageKind.RESUME_INSTALLATION_TO_STAGE2)

        state = session.receive_updater_message(resume, stage1_previously_completed=True)

        assert state == LifecycleState.INSTALLING_STAGE2
        assert session.last_kind == Kind.INSTALLATION_FINISHED_STAGE1
        session.receive_installer_message(_msg(Kind.INSTALLATION_FINISHED_STAGE2))
        assert session.receive_installer_message(_msg(Kind.INSTALLATION_FINISHED_STAGE3)) == (
            LifecycleState.FINISHED
        )

    def test_resume_after_installation_data_rejected(self, session):
        session.receive_updater_message(UpdaterMessage(kind=UpdaterMessageKind.INSTALLATION_DATA))
        resume = UpdaterMessage(kind=UpdaterMessageKind.RESUME_INSTALLATION_TO_STAGE2)

        with pytest.raises(ProtocolViolation, match="before the installation data"):
            session.receive_updater_message(resume, stage1_previously_completed=True)
        assert session.state == LifecycleState.IDLE

    def test_resume_mid_extraction_rejected(self, session):
        session.receive_installer_message(_msg(Kind.EXTRACTION_STARTED))
        resume = UpdaterMessage(kind=UpdaterMessageKind.RESUME_INSTALLATION_TO_STAGE2)

        with pytest.raises(ProtocolViolation):
            session.receive_updater_message(resume, stage1_previously_completed=True)

    def test_pong_is_ignored(self, session):
        assert session.receive_updater_message(
            UpdaterMessage(kind=UpdaterMessageKind.ALIVE_PONG)
        ) == LifecycleState.IDLE
