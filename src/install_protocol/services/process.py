"""Launching the installer process for a host application."""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from install_protocol.config import validate_installation_type
from install_protocol.models.installation import InstallationType
from install_protocol.models.status import LauncherStatus
from install_protocol.protocol.naming import launch_label


def requires_authorization(host_bundle_path: str, installation_type: InstallationType) -> bool:
    """Check whether installing needs system authorization.

    Package installs always do; application installs do when the directory
    holding the bundle is not writable by this process.
    """
    if installation_type is not InstallationType.APPLICATION:
        return True
    parent = Path(host_bundle_path).resolve().parent
    return not os.access(parent, os.W_OK)


class InstallerLauncher:
    """Starts the installer program, and the progress agent, for a host bundle identifier."""

    def __init__(
        self,
        installer_program: Optional[list[str]] = None,
        progress_program: Optional[list[str]] = None,
    ):
        """Initialize launcher.

        Args:
            installer_program: Command that runs the installer; the bundle
                identifier is appended as its only argument
                (default: this interpreter running install_protocol.main)
            progress_program: Command that runs the progress agent; the host
                bundle path and whether the installer needs system
                authorization are appended. No agent is launched if None.
        """
        self.logger = logging.getLogger("install_protocol.process")
        self.installer_program = installer_program or [sys.executable, "-m", "install_protocol.main"]
        self.progress_program = progress_program
        self.processes: dict[str, asyncio.subprocess.Process] = {}

    async def _submit_job(self, label: str, command: list[str]) -> bool:
        """Start command under label, replacing a running job with the same label.

        Returns:
            True if the process was started
        """
        existing = self.processes.get(label)
        if existing is not None and existing.returncode is None:
            self.logger.info(f"Replacing running job {label}")
            existing.terminate()
            await existing.wait()

        self.logger.info(f"Launching job {label}: {' '.join(command)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            self.logger.error(f"Failed to submit job {label}: {e}")
            return False

        self.processes[label] = process
        self.logger.info(f"Job {label} started (pid={process.pid})")
        return True

    async def launch_installer(
        self,
        host_bundle_path: str,
        bundle_identifier: str,
        installation_type: str,
        allow_driver_interaction: bool,
        allow_updater_interaction: bool,
    ) -> LauncherStatus:
        """Launch the installer, then the progress agent, for one application.

        Args:
            host_bundle_path: Bundle being updated
            bundle_identifier: Host bundle identifier, passed to the installer
            installation_type: One of the recognized installation types
            allow_driver_interaction: Whether the user driver may prompt now
            allow_updater_interaction: Whether the updater may interact at all

        Returns:
            LauncherStatus outcome; FAILURE if either job cannot be started

        Raises:
            InvalidConfiguration: If installation_type is not recognized
        """
        validated_type = validate_installation_type(installation_type)
        needs_auth = requires_authorization(host_bundle_path, validated_type)

        if not allow_updater_interaction and (
            needs_auth or validated_type is InstallationType.INTERACTIVE_PACKAGE
        ):
            self.logger.error("Updater is not allowing user interaction in the launcher.")
            return LauncherStatus.FAILURE
        if needs_auth and not allow_driver_interaction:
            return LauncherStatus.AUTHORIZE_LATER

        # The installer receives only the bundle identifier; everything else goes over IPC.
        installer_label = launch_label(bundle_identifier, "installer")
        if not await self._submit_job(installer_label, [*self.installer_program, bundle_identifier]):
            self.logger.error("Failed to submit installer job")
            return LauncherStatus.FAILURE

        if self.progress_program is not None:
            progress_label = launch_label(bundle_identifier, "progress")
            command = [*self.progress_program, host_bundle_path, "true" if needs_auth else "false"]
            if not await self._submit_job(progress_label, command):
                self.logger.error("Failed to submit progress agent job")
                return LauncherStatus.FAILURE

        return LauncherStatus.SUCCESS
