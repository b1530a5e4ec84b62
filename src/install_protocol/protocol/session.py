"""Exchange lifecycle state machine.

One ProtocolSession tracks one install attempt as seen by one side of the
channel. It has no internal concurrency and never talks to the transport.
"""

import logging
from typing import Optional

from install_protocol.exceptions import ProtocolViolation
from install_protocol.models.installation import ExtractionProgress
from install_protocol.models.messages import (
    InstallerMessage,
    InstallerMessageKind,
    UpdaterMessage,
    UpdaterMessageKind,
)
from install_protocol.models.status import LifecycleState
from install_protocol.protocol.transitions import require_legal_transition

STATE_FOR_KIND = {
    InstallerMessageKind.NOT_STARTED: LifecycleState.AWAITING_INSTALLATION_DATA,
    InstallerMessageKind.EXTRACTION_STARTED: LifecycleState.EXTRACTING,
    InstallerMessageKind.EXTRACTED_ARCHIVE_WITH_PROGRESS: LifecycleState.EXTRACTING,
    InstallerMessageKind.ARCHIVE_EXTRACTION_FAILED: LifecycleState.FAILED,
    InstallerMessageKind.VALIDATION_STARTED: LifecycleState.VALIDATING,
    InstallerMessageKind.INSTALLATION_STARTED_STAGE1: LifecycleState.INSTALLING_STAGE1,
    InstallerMessageKind.INSTALLATION_FINISHED_STAGE1: LifecycleState.INSTALLING_STAGE2,
    InstallerMessageKind.INSTALLATION_FINISHED_STAGE2: LifecycleState.INSTALLING_STAGE3,
    InstallerMessageKind.INSTALLATION_FINISHED_STAGE3: LifecycleState.FINISHED,
}

RESUMABLE_STATES = frozenset(
    {LifecycleState.IDLE, LifecycleState.AWAITING_INSTALLATION_DATA}
)

TERMINAL_STATES = frozenset({LifecycleState.FINISHED, LifecycleState.FAILED})


class ProtocolSession:
    """Tracks lifecycle state for one install attempt.

    Usage:
        session = ProtocolSession("com.example.App")
        session.receive_installer_message(InstallerMessage(kind=...))
        if session.is_terminal: ...
    """

    def __init__(self, bundle_identifier: str, role: str = "updater"):
        """Initialize an idle session.

        Args:
            bundle_identifier: Host bundle identifier (used for logging only)
            role: "updater" or "installer" (used for logging only)
        """
        self.logger = logging.getLogger(f"install_protocol.session.{role}")
        self.bundle_identifier = bundle_identifier
        self.reset()

    def reset(self) -> None:
        """Return to idle, forgetting all progress of this attempt."""
        self.state: LifecycleState = LifecycleState.IDLE
        self.last_kind: Optional[InstallerMessageKind] = None
        self.progress: float = 0.0
        self.error: Optional[str] = None
        self.installation_data_received = False
        # Set once an illegal transition is seen; the sequence is never healed.
        self.aborted = False

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def fail(self, error: str) -> None:
        """Abort the attempt for good; only pings are accepted afterwards."""
        self.logger.error(f"[{self.bundle_identifier}] Install attempt aborted: {error}")
        self.state = LifecycleState.FAILED
        self.error = error
        self.aborted = True

    def _check_order(self, kind: InstallerMessageKind) -> None:
        """Raise ProtocolViolation if kind may not follow the last staged kind."""
        if self.aborted:
            raise ProtocolViolation(
                f"{kind.name} after the install attempt was aborted",
                context={"next": kind, "state": self.state},
            )
        if self.last_kind is None:
            if kind is InstallerMessageKind.NOT_STARTED:
                return
            # A session opens at zero progress.
            require_legal_transition(InstallerMessageKind.NOT_STARTED, kind)
        else:
            require_legal_transition(self.last_kind, kind)

    @staticmethod
    def _parse_progress(message: InstallerMessage) -> Optional[float]:
        if message.kind is not InstallerMessageKind.EXTRACTED_ARCHIVE_WITH_PROGRESS:
            return None
        if not message.payload:
            return None
        try:
            return ExtractionProgress.from_payload(message.payload).fraction
        except ValueError as e:
            raise ProtocolViolation(
                f"Malformed progress payload: {e}",
                context={"next": message.kind},
            ) from e

    def receive_installer_message(self, message: InstallerMessage) -> LifecycleState:
        """Apply an installer message to the lifecycle.

        Args:
            message: Message reported by the installer

        Returns:
            Lifecycle state after the message

        Raises:
            ProtocolViolation: If the message kind may not follow the last one
                or its payload is malformed. The session is aborted and stays failed.
        """
        kind = message.kind
        if kind is InstallerMessageKind.ALIVE_PING:
            return self.state

        try:
            self._check_order(kind)
            progress = self._parse_progress(message)
        except ProtocolViolation as e:
            # The first violation's reason is kept.
            if not self.aborted:
                self.fail(str(e))
            raise

        if kind is InstallerMessageKind.NOT_STARTED and self.last_kind is not None:
            self.logger.info(f"[{self.bundle_identifier}] Install restarted from NOT_STARTED")
            self.reset()

        if progress is not None:
            self.progress = progress
        if kind is InstallerMessageKind.ARCHIVE_EXTRACTION_FAILED:
            self.error = "EXTRACTION_FAILED: installer could not extract the archive"

        self.last_kind = kind
        self.state = STATE_FOR_KIND[kind]
        self.logger.debug(
            f"[{self.bundle_identifier}] {kind.name} accepted, state={self.state.value}"
        )
        return self.state

    def receive_updater_message(
        self, message: UpdaterMessage, stage1_previously_completed: bool = False
    ) -> LifecycleState:
        """Apply an updater command to the lifecycle.

        Commands are not ordinal-checked. ResumeInstallationToStage2 carries two
        preconditions: it precedes the installation data, and a prior session
        finished stage 1 of the same update.

        Args:
            message: Command sent by the updater
            stage1_previously_completed: Persisted knowledge of a prior stage-1 completion

        Returns:
            Lifecycle state after the command

        Raises:
            ProtocolViolation: If a resume request fails a precondition
        """
        kind = message.kind
        if kind is UpdaterMessageKind.INSTALLATION_DATA:
            self.installation_data_received = True
        elif kind is UpdaterMessageKind.RESUME_INSTALLATION_TO_STAGE2:
            if self.installation_data_received:
                raise ProtocolViolation(
                    "Resume to stage 2 must be requested before the installation data",
                    context={"state": self.state},
                )
            if self.state not in RESUMABLE_STATES:
                raise ProtocolViolation(
                    f"Cannot resume to stage 2 from state {self.state.value}",
                    context={"state": self.state},
                )
            if not stage1_previously_completed:
                self.logger.error(
                    f"[{self.bundle_identifier}] Resume to stage 2 requested "
                    f"but no prior stage 1 completion is recorded"
                )
                raise ProtocolViolation(
                    "Cannot resume to stage 2: stage 1 was never completed",
                    context={"state": self.state},
                )
            self.last_kind = InstallerMessageKind.INSTALLATION_FINISHED_STAGE1
            self.state = LifecycleState.INSTALLING_STAGE2
            self.logger.info(f"[{self.bundle_identifier}] Resumed installation at stage 2")
        return self.state
