"""Error taxonomy for the installation message protocol.

None of these errors are retried by the protocol layer. Resuming an install
(e.g. via RESUME_INSTALLATION_TO_STAGE2) is always an explicit caller decision.
"""

from typing import Optional


class InstallProtocolError(Exception):
    """Base exception for protocol operations."""

    code = "INSTALL_PROTOCOL_ERROR"

    def __init__(self, message: str, context: Optional[dict] = None):
        """Initialize with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dict with additional context (kinds, states, etc.)
        """
        super().__init__(f"{self.code}: {message}")
        self.message = message
        self.context = context or {}


class ProtocolViolation(InstallProtocolError):
    """Illegal stage transition or unexpected message; fatal to the install attempt."""

    code = "PROTOCOL_VIOLATION"


class ExtractionFailure(InstallProtocolError):
    """Installer reported ARCHIVE_EXTRACTION_FAILED; restart from idle to recover."""

    code = "EXTRACTION_FAILED"


class PeerUnresponsive(InstallProtocolError):
    """Liveness timeout or premature channel closure; fatal to the channel session."""

    code = "PEER_UNRESPONSIVE"


class InvalidConfiguration(InstallProtocolError):
    """Installation type outside the recognized set."""

    code = "INVALID_CONFIGURATION"


class InstallationFailure(InstallProtocolError):
    """Validation or an installation stage failed on the installer side."""

    code = "INSTALLATION_FAILED"
