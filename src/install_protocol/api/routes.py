"""API route handlers for the status-info service."""

from fastapi import APIRouter, Depends, FastAPI, Request

from install_protocol.api.models import (
    AppcastItemResponse,
    StatusData,
    StatusResponse,
)
from install_protocol.models.status import LifecycleState

router = APIRouter(prefix="/api/v1.0")


def get_installer(request: Request):
    """Installer service hosting this status-info app."""
    return request.app.state.installer


@router.get("/status", response_model=StatusResponse)
async def get_status(installer=Depends(get_installer)):
    """GET /api/v1.0/status - Query the installer's current lifecycle state.

    Response format (success):
        {
            "code": 200,
            "msg": "success",
            "data": {
                "bundle_identifier": "com.example.App",
                "state": "extracting",
                "last_kind": "EXTRACTED_ARCHIVE_WITH_PROGRESS",
                "progress": 0.45,
                "error": null
            }
        }

    Response format (failed state):
        {
            "code": 500,
            "msg": "Installation failed: EXTRACTION_FAILED: ...",
            "data": {... "state": "failed", "error": "EXTRACTION_FAILED: ..."}
        }
    """
    session = installer.session
    data = StatusData(
        bundle_identifier=installer.bundle_identifier,
        state=session.state,
        last_kind=session.last_kind.name if session.last_kind is not None else None,
        progress=session.progress,
        error=session.error,
    )

    if session.state is LifecycleState.FAILED:
        msg = f"Installation failed: {session.error}" if session.error else "Installation failed"
        return StatusResponse(code=500, msg=msg, data=data)
    return StatusResponse(code=200, msg="success", data=data)


@router.get("/appcast-item", response_model=AppcastItemResponse)
async def get_appcast_item(installer=Depends(get_installer)):
    """GET /api/v1.0/appcast-item - Archive descriptor of the update being installed.

    Lets a freshly started updater learn which update an already running
    installer is working on.
    """
    if installer.appcast_item is None:
        return AppcastItemResponse(code=404, msg="No appcast item received")
    return AppcastItemResponse(code=200, msg="success", data=installer.appcast_item.archive)


def create_status_app(installer) -> FastAPI:
    """Build the status-info FastAPI app for one installer service."""
    app = FastAPI(
        title="Installer Status Info",
        description="Status-info service of a running installer",
        version="1.0.0",
    )
    app.state.installer = installer
    app.include_router(router)

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "service": installer.identity.status_info_service}

    return app
