"""Installation payload models carried inside protocol messages."""

import json
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class InstallationType(str, Enum):
    """Selects which installer behavior class handles the payload."""

    APPLICATION = "Application"
    GUIDED_PACKAGE = "GuidedPackage"
    # Deprecated; use GUIDED_PACKAGE instead.
    INTERACTIVE_PACKAGE = "InteractivePackage"


class InstallationData(BaseModel):
    """Payload of UpdaterMessageKind.INSTALLATION_DATA.

    Example:
        {
            "host_bundle_path": "/Applications/Example.app",
            "relaunch_path": "/Applications/Example.app",
            "installation_type": "Application",
            "update_directory": "/tmp/Example-update",
            "download_name": "Example-2.0.zip"
        }
    """

    host_bundle_path: str = Field(..., min_length=1, description="Bundle being replaced")
    relaunch_path: str = Field(..., min_length=1, description="Path relaunched after install")
    installation_type: InstallationType = Field(
        InstallationType.APPLICATION, description="Installer behavior class"
    )
    update_directory: str = Field(..., min_length=1, description="Directory holding the archive")
    download_name: str = Field(..., min_length=1, description="Archive filename")
    ed_signature: Optional[str] = Field(None, description="Base64 EdDSA signature")
    dsa_signature: Optional[str] = Field(None, description="Base64 DSA signature")

    @field_validator("download_name")
    @classmethod
    def no_directory_traversal(cls, v: str) -> str:
        """Archive name must stay inside the update directory."""
        if "/" in v or ".." in v:
            raise ValueError("Download name must be a plain filename")
        return v

    def to_payload(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_payload(cls, payload: bytes) -> "InstallationData":
        return cls.model_validate_json(payload)


class ArchiveDescriptor(BaseModel):
    """Archive descriptor of the appcast item being installed."""

    version: str = Field(..., min_length=1, description="Machine-readable version")
    display_version: Optional[str] = Field(None, description="Human-readable version")
    archive_name: str = Field(..., min_length=1, description="Archive filename")
    content_length: int = Field(0, ge=0, description="Archive size in bytes")


class AppcastItemData(BaseModel):
    """Payload of UpdaterMessageKind.SENT_UPDATE_APPCAST_ITEM_DATA.

    Serialized as a JSON object whose only field is the configured archive key.
    """

    archive: ArchiveDescriptor

    def to_payload(self, archive_key: str) -> bytes:
        body = {archive_key: self.archive.model_dump(mode="json")}
        return json.dumps(body).encode("utf-8")

    @classmethod
    def from_payload(cls, payload: bytes, archive_key: str) -> "AppcastItemData":
        body = json.loads(payload)
        if not isinstance(body, dict) or archive_key not in body:
            raise ValueError(f"Payload has no '{archive_key}' field")
        return cls(archive=ArchiveDescriptor.model_validate(body[archive_key]))


class ExtractionProgress(BaseModel):
    """Payload of InstallerMessageKind.EXTRACTED_ARCHIVE_WITH_PROGRESS."""

    fraction: float = Field(..., ge=0.0, le=1.0, description="Extraction progress")

    def to_payload(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_payload(cls, payload: bytes) -> "ExtractionProgress":
        return cls.model_validate_json(payload)
