"""Message kinds and messages exchanged between updater and installer."""

from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field


class InstallerMessageKind(IntEnum):
    """Installer -> updater messages.

    Order matters: higher stages have higher values. Never reuse an ordinal
    for a different meaning.
    """

    NOT_STARTED = 0
    EXTRACTION_STARTED = 1
    EXTRACTED_ARCHIVE_WITH_PROGRESS = 2
    ARCHIVE_EXTRACTION_FAILED = 3
    VALIDATION_STARTED = 4
    INSTALLATION_STARTED_STAGE1 = 5
    INSTALLATION_FINISHED_STAGE1 = 6
    INSTALLATION_FINISHED_STAGE2 = 7
    INSTALLATION_FINISHED_STAGE3 = 8
    ALIVE_PING = 9


class UpdaterMessageKind(IntEnum):
    """Updater -> installer commands. Not ordered relative to each other."""

    INSTALLATION_DATA = 0
    SENT_UPDATE_APPCAST_ITEM_DATA = 1
    RESUME_INSTALLATION_TO_STAGE2 = 2
    ALIVE_PONG = 3


class InstallerMessage(BaseModel):
    """Message emitted by the installer."""

    model_config = ConfigDict(frozen=True, strict=True)

    kind: InstallerMessageKind = Field(..., description="Installer message kind")
    payload: bytes = Field(default=b"", description="Opaque payload, shape depends on kind")

    def __str__(self) -> str:
        return f"InstallerMessage({self.kind.name}, {len(self.payload)} bytes)"


class UpdaterMessage(BaseModel):
    """Message emitted by the updater."""

    model_config = ConfigDict(frozen=True, strict=True)

    kind: UpdaterMessageKind = Field(..., description="Updater message kind")
    payload: bytes = Field(default=b"", description="Opaque payload, shape depends on kind")

    def __str__(self) -> str:
        return f"UpdaterMessage({self.kind.name}, {len(self.payload)} bytes)"
