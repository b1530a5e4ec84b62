"""Progress reporting to the progress agent service."""

import logging
from pathlib import Path
from typing import Optional, Union

import httpx

from install_protocol.api.models import StageReport
from install_protocol.models.messages import InstallerMessageKind
from install_protocol.models.status import LifecycleState


class ReportService:
    """Posts stage reports to the progress agent over its Unix socket."""

    def __init__(self, socket_path: Union[str, Path], base_url: str = "http://progress-agent"):
        """Initialize report service.

        Args:
            socket_path: Socket derived from the progress agent service name
            base_url: Host part used in request URLs (routing is by socket)
        """
        self.logger = logging.getLogger("install_protocol.reporter")
        self.socket_path = str(socket_path)
        self.base_url = base_url
        self.report_endpoint = f"{base_url}/api/v1.0/report"

    async def report_stage(
        self,
        bundle_identifier: str,
        kind: InstallerMessageKind,
        state: LifecycleState,
        progress: float = 0.0,
        error: Optional[str] = None,
    ) -> None:
        """Send a stage report to the progress agent.

        Args:
            bundle_identifier: Host bundle identifier
            kind: Installer message kind just reported
            state: Lifecycle state after the message
            progress: Extraction progress fraction (0.0-1.0)
            error: Error message if state == failed

        Note:
            Failures are logged but not raised; a missing agent never blocks
            the installation.
        """
        payload = StageReport(
            bundle_identifier=bundle_identifier,
            kind=kind.name,
            state=state,
            progress=progress,
            error=error,
        )

        self.logger.debug(f"Reporting to progress agent: kind={kind.name}, state={state.value}")

        try:
            transport = httpx.AsyncHTTPTransport(uds=self.socket_path)
            async with httpx.AsyncClient(transport=transport, timeout=5.0) as client:
                response = await client.post(
                    self.report_endpoint,
                    json=payload.model_dump(mode="json"),
                )
                response.raise_for_status()
                self.logger.debug("Report sent successfully")

        except httpx.HTTPError as e:
            self.logger.warning(
                f"Failed to report to progress agent: {e}. Continuing installation..."
            )
        except Exception as e:
            self.logger.error(
                f"Unexpected error reporting to progress agent: {e}",
                exc_info=True,
            )
