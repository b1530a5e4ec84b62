"""Persisted installation record model."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from install_protocol.models.messages import InstallerMessageKind


class InstallationRecord(BaseModel):
    """Persistent stage knowledge at <state_dir>/<bundle_identifier>.json.

    Survives installer relaunches so a later session can decide whether
    ResumeInstallationToStage2 is allowed.
    """

    bundle_identifier: str = Field(..., min_length=1, description="Host bundle identifier")
    version: str = Field(..., min_length=1, description="Version being installed")
    last_kind: InstallerMessageKind = Field(
        InstallerMessageKind.NOT_STARTED, description="Last staged message reported"
    )
    last_update: datetime = Field(
        default_factory=datetime.now, description="Last record update timestamp"
    )
    stage1_completed_at: Optional[datetime] = Field(
        None, description="Timestamp when INSTALLATION_FINISHED_STAGE1 was reported"
    )

    @field_validator("last_update", "stage1_completed_at", mode="before")
    @classmethod
    def parse_iso8601(cls, v):
        """Parse ISO 8601 timestamp strings."""
        if v is None:
            return None
        if isinstance(v, str):
            return datetime.fromisoformat(v.replace("Z", "+00:00"))
        return v

    def stage1_completed(self) -> bool:
        """Check whether a prior session finished installation stage 1.

        Returns:
            True if stage1_completed_at is set, False otherwise
        """
        return self.stage1_completed_at is not None
