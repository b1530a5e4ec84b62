"""Installer side of the protocol."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from install_protocol.config import ProtocolConfig, get_config
from install_protocol.exceptions import (
    InstallationFailure,
    InstallProtocolError,
    PeerUnresponsive,
    ProtocolViolation,
)
from install_protocol.models.installation import (
    AppcastItemData,
    ExtractionProgress,
    InstallationData,
)
from install_protocol.models.messages import (
    InstallerMessage,
    InstallerMessageKind,
    UpdaterMessage,
    UpdaterMessageKind,
)
from install_protocol.models.status import LifecycleState
from install_protocol.protocol.naming import EndpointIdentity, service_socket_path
from install_protocol.protocol.session import ProtocolSession
from install_protocol.protocols import InstallerSteps
from install_protocol.services.channel import MessageChannel, serve_channel
from install_protocol.services.liveness import LivenessMonitor, run_pinger
from install_protocol.services.reporter import ReportService
from install_protocol.services.state_manager import StateManager

# Once stage 1 finished, the installer may keep going without the updater.
DETACHABLE_STATES = frozenset(
    {
        LifecycleState.INSTALLING_STAGE2,
        LifecycleState.INSTALLING_STAGE3,
        LifecycleState.FINISHED,
    }
)


class InstallerService:
    """Hosts the installer service for one application.

    Accepts a single updater connection, applies updater commands, and
    reports installer stages after checking them against its own session.
    """

    def __init__(
        self,
        bundle_identifier: str,
        config: Optional[ProtocolConfig] = None,
        state_manager: Optional[StateManager] = None,
        reporter: Optional[ReportService] = None,
    ):
        """Initialize installer service.

        Args:
            bundle_identifier: Host bundle identifier (seed of all service names)
            config: Protocol configuration (default get_config())
            state_manager: StateManager instance (uses singleton if None)
            reporter: Progress agent reporter (default: derived from the bundle identifier)
        """
        self.logger = logging.getLogger("install_protocol.installer")
        self.bundle_identifier = bundle_identifier
        self.config = config or get_config()
        self.state_manager = state_manager or StateManager()
        self.identity = EndpointIdentity.for_bundle_identifier(bundle_identifier)
        self.socket_path: Path = service_socket_path(
            self.identity.installer_service, self.config.socket_dir
        )
        self.reporter = reporter or ReportService(
            service_socket_path(self.identity.progress_agent_service, self.config.socket_dir)
        )

        self.session = ProtocolSession(bundle_identifier, role="installer")
        self.installation_data: Optional[InstallationData] = None
        self.appcast_item: Optional[AppcastItemData] = None
        self.detached = False

        self._server: Optional[asyncio.AbstractServer] = None
        self._channel: Optional[MessageChannel] = None
        self._pinger: Optional[asyncio.Task] = None
        self._installation_data_ready = asyncio.Event()
        self._resume_requested = asyncio.Event()
        self._channel_lost = asyncio.Event()

    @property
    def version(self) -> str:
        if self.appcast_item is not None:
            return self.appcast_item.archive.version
        return "unknown"

    @property
    def resume_requested(self) -> bool:
        return self._resume_requested.is_set()

    async def start(self) -> None:
        """Start listening on the installer service socket."""
        self._server = await serve_channel(
            self.socket_path, self._handle_connection, name=self.identity.installer_service
        )
        self.logger.info(f"Installer service listening at {self.socket_path}")

    async def close(self) -> None:
        """Stop serving and close the updater channel."""
        if self._pinger is not None:
            self._pinger.cancel()
        if self._channel is not None:
            await self._channel.close()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            self.socket_path.unlink(missing_ok=True)
        self.logger.info("Installer service closed")

    async def _handle_connection(self, channel: MessageChannel) -> None:
        if self._channel is not None:
            self.logger.warning("Rejecting second updater connection")
            await channel.close()
            return

        self._channel = channel
        self.logger.info("Updater connected")
        self._pinger = asyncio.create_task(
            run_pinger(self._send_ping, self.config.ping_interval)
        )
        monitor = LivenessMonitor(self.config.alive_timeout)
        try:
            while True:
                message = await monitor.receive(channel)
                if message is None:
                    break
                await self._dispatch(message)
        except PeerUnresponsive as e:
            self.logger.error(f"Updater channel failed: {e}")
        except ProtocolViolation as e:
            self.logger.error(f"Rejected updater message: {e}")
            self.session.fail(str(e))
        except ValueError as e:
            self.logger.error(f"Malformed updater payload: {e}")
            self.session.fail(f"PROTOCOL_VIOLATION: {e}")
        finally:
            self._pinger.cancel()
            await channel.close()
            self._on_channel_lost()

    async def _send_ping(self) -> None:
        await self._send(InstallerMessage(kind=InstallerMessageKind.ALIVE_PING))

    async def _send(self, message: InstallerMessage) -> None:
        if self._channel is None or self._channel.closed:
            raise ConnectionError("No updater connected")
        await self._channel.send(message)

    async def _dispatch(self, message: UpdaterMessage) -> None:
        kind = message.kind
        if kind is UpdaterMessageKind.ALIVE_PONG:
            return

        if kind is UpdaterMessageKind.INSTALLATION_DATA:
            self.installation_data = InstallationData.from_payload(message.payload)
            self.session.receive_updater_message(message)
            self.logger.info(
                f"Received installation data: type={self.installation_data.installation_type.value}, "
                f"archive={self.installation_data.download_name}"
            )
            self._installation_data_ready.set()
        elif kind is UpdaterMessageKind.SENT_UPDATE_APPCAST_ITEM_DATA:
            self.appcast_item = AppcastItemData.from_payload(message.payload, self.config.archive_key)
            self.logger.info(f"Received appcast item for version {self.appcast_item.archive.version}")
        elif kind is UpdaterMessageKind.RESUME_INSTALLATION_TO_STAGE2:
            # The appcast item, when sent, precedes the resume and names the version.
            stage1_completed = self.state_manager.stage1_completed(
                self.bundle_identifier, self.version
            )
            # Raises ProtocolViolation when no stage-1 completion of this version is recorded.
            self.session.receive_updater_message(
                message, stage1_previously_completed=stage1_completed
            )
            self._resume_requested.set()

    def _on_channel_lost(self) -> None:
        self._channel_lost.set()
        if self.session.state in DETACHABLE_STATES:
            self.detached = True
            self.logger.info(
                f"Updater disconnected in {self.session.state.value}, continuing detached"
            )
        elif not self.session.is_terminal:
            self.session.fail("PEER_UNRESPONSIVE: updater channel closed before stage 1 finished")

    async def wait_for_installation_data(self, timeout: Optional[float] = None) -> InstallationData:
        """Wait until the updater sent its installation data.

        Raises:
            PeerUnresponsive: If the channel closes or the timeout passes first
        """
        data_ready = asyncio.create_task(self._installation_data_ready.wait())
        lost = asyncio.create_task(self._channel_lost.wait())
        try:
            await asyncio.wait(
                {data_ready, lost}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            data_ready.cancel()
            lost.cancel()
        if self.installation_data is None:
            raise PeerUnresponsive(
                "No installation data received",
                context={"channel_lost": self._channel_lost.is_set()},
            )
        return self.installation_data

    async def report(self, kind: InstallerMessageKind, payload: bytes = b"") -> LifecycleState:
        """Report an installer stage to the updater.

        The stage is checked against this side's own session before it is
        sent, persisted, and forwarded to the progress agent.

        Args:
            kind: Installer message kind to report
            payload: Opaque payload for the kind

        Returns:
            Lifecycle state after the report

        Raises:
            ProtocolViolation: If kind may not follow the last reported kind
            PeerUnresponsive: If the updater is gone and the install cannot continue detached
        """
        message = InstallerMessage(kind=kind, payload=payload)
        if self.session.aborted and self._channel_lost.is_set():
            raise PeerUnresponsive(
                f"Install attempt aborted: {self.session.error}",
                context={"kind": kind},
            )

        state = self.session.receive_installer_message(message)
        if kind is not InstallerMessageKind.NOT_STARTED:
            self.state_manager.record_stage(self.bundle_identifier, self.version, kind)

        if self._channel is not None and not self._channel.closed:
            try:
                await self._send(message)
            except ConnectionError as e:
                self.logger.warning(f"Failed to send {kind.name}: {e}")
        elif not self.detached:
            self.logger.debug(f"{kind.name} recorded, no updater connected")

        if kind is InstallerMessageKind.INSTALLATION_FINISHED_STAGE3:
            self.state_manager.delete_record(self.bundle_identifier)

        await self.reporter.report_stage(
            self.bundle_identifier,
            kind,
            state,
            progress=self.session.progress,
            error=self.session.error,
        )
        return state

    async def report_progress(self, fraction: float) -> LifecycleState:
        """Report extraction progress (repeatable within the extraction stage)."""
        payload = ExtractionProgress(fraction=fraction).to_payload()
        return await self.report(InstallerMessageKind.EXTRACTED_ARCHIVE_WITH_PROGRESS, payload)

    async def _run_step(
        self,
        name: str,
        step: Callable[[InstallationData], Awaitable[None]],
        data: InstallationData,
    ) -> None:
        """Run one installation step, failing the attempt if it raises.

        Raises:
            InstallationFailure: If the step raised anything but a protocol error
        """
        try:
            await step(data)
        except InstallProtocolError:
            raise
        except Exception as e:
            error = f"INSTALLATION_FAILED: {name} failed: {e}"
            self.logger.error(f"Installation step {name} failed: {e}", exc_info=True)
            self.session.fail(error)
            # No installer kind carries this failure; closing tells the updater.
            if self._channel is not None:
                await self._channel.close()
            await self.reporter.report_stage(
                self.bundle_identifier,
                self.session.last_kind or InstallerMessageKind.NOT_STARTED,
                self.session.state,
                progress=self.session.progress,
                error=error,
            )
            raise InstallationFailure(
                f"{name} failed: {e}",
                context={"step": name, "bundle_identifier": self.bundle_identifier},
            ) from e

    async def run(self, steps: InstallerSteps, data_timeout: Optional[float] = None) -> LifecycleState:
        """Drive one installation through the given steps, reporting each stage.

        Args:
            steps: Implementation of the actual installation work
            data_timeout: Seconds to wait for installation data (default alive_timeout)

        Returns:
            Terminal lifecycle state

        Raises:
            InstallationFailure: If validation or an installation stage fails
            PeerUnresponsive: If the updater goes away before stage 1 finished
        """
        if self.session.last_kind is None:
            await self.report(InstallerMessageKind.NOT_STARTED)
        data = await self.wait_for_installation_data(data_timeout or self.config.alive_timeout)

        if not self.resume_requested:
            await self.report(InstallerMessageKind.EXTRACTION_STARTED)
            try:
                await steps.extract(data, self.report_progress)
            except InstallProtocolError:
                raise
            except Exception as e:
                self.logger.error(f"Extraction failed: {e}", exc_info=True)
                return await self.report(InstallerMessageKind.ARCHIVE_EXTRACTION_FAILED)

            await self.report(InstallerMessageKind.VALIDATION_STARTED)
            await self._run_step("validate", steps.validate, data)
            await self.report(InstallerMessageKind.INSTALLATION_STARTED_STAGE1)
            await self._run_step("install_stage1", steps.install_stage1, data)
            await self.report(InstallerMessageKind.INSTALLATION_FINISHED_STAGE1)

        await self._run_step("install_stage2", steps.install_stage2, data)
        await self.report(InstallerMessageKind.INSTALLATION_FINISHED_STAGE2)
        await self._run_step("install_stage3", steps.install_stage3, data)
        return await self.report(InstallerMessageKind.INSTALLATION_FINISHED_STAGE3)
