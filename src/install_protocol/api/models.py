"""Pydantic models for the status-info and progress-agent HTTP APIs."""

from typing import Optional
from pydantic import BaseModel, Field

from install_protocol.models.installation import ArchiveDescriptor
from install_protocol.models.status import LifecycleState


class StatusData(BaseModel):
    """Installer status nested in response."""

    bundle_identifier: str = Field(..., description="Host bundle identifier")
    state: LifecycleState = Field(..., description="Current lifecycle state")
    last_kind: Optional[str] = Field(None, description="Last installer message kind reported")
    progress: float = Field(..., ge=0.0, le=1.0, description="Extraction progress fraction")
    error: Optional[str] = Field(None, description="Error code and message if state == failed")


class StatusResponse(BaseModel):
    """GET /api/v1.0/status response.

    HTTP status code is always 200, real status in 'code' field.
    """

    code: int = Field(..., description="Application-level status code (200/500)")
    msg: str = Field(..., description="Status message or error description")
    data: StatusData = Field(..., description="Installer status")


class AppcastItemResponse(BaseModel):
    """GET /api/v1.0/appcast-item response."""

    code: int = Field(..., description="Application-level status code (200/404)")
    msg: str = Field(..., description="Status message")
    data: Optional[ArchiveDescriptor] = Field(None, description="Archive descriptor if received")


class StageReport(BaseModel):
    """Payload for POST to the progress agent /api/v1.0/report.

    Sent on every accepted installer stage message.
    """

    bundle_identifier: str = Field(..., description="Host bundle identifier")
    kind: str = Field(..., description="Installer message kind name")
    state: LifecycleState = Field(..., description="Lifecycle state after the message")
    progress: float = Field(0.0, ge=0.0, le=1.0, description="Extraction progress fraction")
    error: Optional[str] = Field(None, description="Error code and message if state == failed")
