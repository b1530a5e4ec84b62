"""Updater side of the protocol."""

import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx

from install_protocol.api.models import StatusData, StatusResponse
from install_protocol.config import ProtocolConfig, get_config, validate_installation_type
from install_protocol.exceptions import ExtractionFailure, PeerUnresponsive
from install_protocol.models.installation import AppcastItemData, InstallationData
from install_protocol.models.messages import (
    InstallerMessage,
    InstallerMessageKind,
    UpdaterMessage,
    UpdaterMessageKind,
)
from install_protocol.models.status import LifecycleState
from install_protocol.protocol.naming import EndpointIdentity, service_socket_path
from install_protocol.protocol.session import ProtocolSession
from install_protocol.protocols import PlainVersionDisplay, VersionDisplay
from install_protocol.services.channel import MessageChannel, open_channel
from install_protocol.services.liveness import LivenessMonitor

StateCallback = Callable[[LifecycleState, InstallerMessage], Awaitable[None]]


class UpdaterDriver:
    """Drives one installation from the updater side.

    Usage:
        driver = UpdaterDriver("com.example.App")
        state = await driver.install(host_bundle_path=..., update_directory=...,
                                     download_name=..., installation_type="Application")
    """

    def __init__(
        self,
        bundle_identifier: str,
        config: Optional[ProtocolConfig] = None,
        version_display: Optional[VersionDisplay] = None,
        on_state_change: Optional[StateCallback] = None,
    ):
        """Initialize updater driver.

        Args:
            bundle_identifier: Host bundle identifier (seed of all service names)
            config: Protocol configuration (default get_config())
            version_display: Formats version pairs for log output
            on_state_change: Coroutine called after every accepted stage message
        """
        self.logger = logging.getLogger("install_protocol.updater")
        self.bundle_identifier = bundle_identifier
        self.config = config or get_config()
        self.version_display = version_display or PlainVersionDisplay()
        self.on_state_change = on_state_change
        self.identity = EndpointIdentity.for_bundle_identifier(bundle_identifier)
        self.socket_path: Path = service_socket_path(
            self.identity.installer_service, self.config.socket_dir
        )
        self.status_socket_path: Path = service_socket_path(
            self.identity.status_info_service, self.config.socket_dir
        )
        self.session = ProtocolSession(bundle_identifier, role="updater")
        self._channel: Optional[MessageChannel] = None

    async def connect(self) -> None:
        """Open the channel to the installer service.

        Raises:
            PeerUnresponsive: If no installer is listening
        """
        try:
            self._channel = await open_channel(self.socket_path, name=self.identity.installer_service)
        except (FileNotFoundError, ConnectionError) as e:
            raise PeerUnresponsive(
                f"Cannot connect to {self.identity.installer_service}: {e}",
                context={"socket": str(self.socket_path)},
            ) from e
        self.logger.info(f"Connected to {self.identity.installer_service}")

    async def cancel(self) -> None:
        """Terminate the channel unilaterally. Safe at any point."""
        if self._channel is not None:
            await self._channel.close()
            self.logger.info(f"Channel closed in state {self.session.state.value}")

    async def _send(self, kind: UpdaterMessageKind, payload: bytes = b"") -> None:
        await self._channel.send(UpdaterMessage(kind=kind, payload=payload))

    async def install(
        self,
        host_bundle_path: str,
        update_directory: str,
        download_name: str,
        installation_type: Optional[str] = None,
        relaunch_path: Optional[str] = None,
        appcast_item: Optional[AppcastItemData] = None,
        host_version: Optional[str] = None,
        resume_to_stage2: bool = False,
        stop_after_stage1: bool = False,
    ) -> LifecycleState:
        """Hand an installation to the installer and follow it to a terminal state.

        Args:
            host_bundle_path: Bundle being replaced
            update_directory: Directory holding the downloaded archive
            download_name: Archive filename
            installation_type: One of the recognized types (default from config)
            relaunch_path: Path relaunched afterwards (default host_bundle_path)
            appcast_item: Archive descriptor of the update, sent before the data
            host_version: Currently installed version (log output only)
            resume_to_stage2: Ask the installer to resume at stage 2; the caller
                asserts a prior session finished stage 1
            stop_after_stage1: Return once stage 1 finished and leave the
                installer running detached

        Returns:
            FINISHED, or INSTALLING_STAGE2 when stop_after_stage1 is set

        Raises:
            InvalidConfiguration: Before any channel is opened, for an unknown type
            ExtractionFailure: If the installer reports ARCHIVE_EXTRACTION_FAILED
            PeerUnresponsive: On liveness timeout or premature channel closure
            ProtocolViolation: On an illegal stage order
        """
        if installation_type is None:
            installation_type = self.config.default_installation_type.value
        validated_type = validate_installation_type(installation_type, self.config)
        data = InstallationData(
            host_bundle_path=host_bundle_path,
            relaunch_path=relaunch_path or host_bundle_path,
            installation_type=validated_type,
            update_directory=update_directory,
            download_name=download_name,
        )

        if appcast_item is not None and host_version is not None:
            new_display, old_display = self.version_display.format_versions(
                appcast_item.archive.display_version or appcast_item.archive.version,
                host_version,
            )
            self.logger.info(f"Installing version {new_display} over {old_display}")

        if self._channel is None or self._channel.closed:
            await self.connect()

        try:
            if appcast_item is not None:
                await self._send(
                    UpdaterMessageKind.SENT_UPDATE_APPCAST_ITEM_DATA,
                    appcast_item.to_payload(self.config.archive_key),
                )
            if resume_to_stage2:
                resume = UpdaterMessage(kind=UpdaterMessageKind.RESUME_INSTALLATION_TO_STAGE2)
                self.session.receive_updater_message(resume, stage1_previously_completed=True)
                await self._channel.send(resume)
            installation_message = UpdaterMessage(
                kind=UpdaterMessageKind.INSTALLATION_DATA, payload=data.to_payload()
            )
            self.session.receive_updater_message(installation_message)
            await self._channel.send(installation_message)

            return await self._follow(stop_after_stage1)
        except ConnectionError as e:
            await self.cancel()
            raise PeerUnresponsive(
                f"Installer channel broke in state {self.session.state.value}: {e}",
                context={"state": self.session.state},
            ) from e
        except Exception:
            await self.cancel()
            raise

    async def _follow(self, stop_after_stage1: bool) -> LifecycleState:
        monitor = LivenessMonitor(self.config.alive_timeout)
        while True:
            if self.session.state is LifecycleState.FINISHED:
                await self.cancel()
                return self.session.state
            if stop_after_stage1 and self.session.state is LifecycleState.INSTALLING_STAGE2:
                self.logger.info("Stage 1 finished, leaving the installer to complete detached")
                await self.cancel()
                return self.session.state

            message = await monitor.receive(self._channel)
            if message is None:
                raise PeerUnresponsive(
                    f"Installer closed the channel in state {self.session.state.value}",
                    context={"state": self.session.state},
                )
            if message.kind is InstallerMessageKind.ALIVE_PING:
                await self._send(UpdaterMessageKind.ALIVE_PONG)
                continue

            state = self.session.receive_installer_message(message)
            if self.on_state_change is not None:
                await self.on_state_change(state, message)
            if message.kind is InstallerMessageKind.ARCHIVE_EXTRACTION_FAILED:
                raise ExtractionFailure(
                    "Installer failed to extract the archive",
                    context={"bundle_identifier": self.bundle_identifier},
                )

    async def query_status(self) -> Optional[StatusData]:
        """Ask a running installer's status-info service for its state.

        Returns:
            StatusData, or None if no installer is running for this application
        """
        try:
            transport = httpx.AsyncHTTPTransport(uds=str(self.status_socket_path))
            async with httpx.AsyncClient(transport=transport, timeout=5.0) as client:
                response = await client.get("http://status-info/api/v1.0/status")
                response.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.debug(f"No status-info service for {self.bundle_identifier}: {e}")
            return None
        return StatusResponse.model_validate(response.json()).data
