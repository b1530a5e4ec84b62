"""Installer process entry point.

Usage:
    python -m install_protocol.main <bundle_identifier>

The bundle identifier is the only argument; everything else arrives over the
installer service channel. The InstallerSteps implementation is named by the
INSTALL_PROTOCOL_INSTALLER_STEPS setting ("package.module:factory").
"""

import asyncio
import importlib
import logging
import sys
from typing import Optional

import uvicorn

from install_protocol.api.routes import create_status_app
from install_protocol.config import ProtocolConfig, get_config
from install_protocol.exceptions import InstallProtocolError, InvalidConfiguration
from install_protocol.models.status import LifecycleState
from install_protocol.protocol.naming import service_socket_path
from install_protocol.protocols import InstallerSteps
from install_protocol.services.installer import InstallerService
from install_protocol.utils.logging import setup_logger


def load_steps(import_path: Optional[str]) -> InstallerSteps:
    """Instantiate the InstallerSteps factory named by "module:attr".

    Raises:
        InvalidConfiguration: If the path is missing or malformed
    """
    if not import_path or ":" not in import_path:
        raise InvalidConfiguration(
            f"Installer steps must be given as 'module:factory', got {import_path!r}"
        )
    module_name, attr = import_path.split(":", 1)
    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise InvalidConfiguration(f"Cannot load installer steps {import_path}: {e}") from e
    return factory()


async def run_installer(
    bundle_identifier: str,
    steps: InstallerSteps,
    config: Optional[ProtocolConfig] = None,
) -> LifecycleState:
    """Run one installer session for bundle_identifier.

    Startup:
    - Start the installer service and the status-info service
    - Drive the installation through steps

    Shutdown:
    - Stop both services and remove their sockets
    """
    config = config or get_config()
    logger = logging.getLogger("install_protocol.main")
    installer = InstallerService(bundle_identifier, config=config)
    status_socket = service_socket_path(installer.identity.status_info_service, config.socket_dir)
    status_socket.parent.mkdir(parents=True, exist_ok=True)
    status_socket.unlink(missing_ok=True)

    server = uvicorn.Server(
        uvicorn.Config(
            create_status_app(installer),
            uds=str(status_socket),
            log_level="warning",
            access_log=False,
        )
    )
    status_task = asyncio.create_task(server.serve())

    await installer.start()
    try:
        state = await installer.run(steps)
        logger.info(f"Installation of {bundle_identifier} ended in state {state.value}")
        return state
    except InstallProtocolError as e:
        logger.error(f"Installation of {bundle_identifier} aborted: {e}")
        return installer.session.state
    finally:
        await installer.close()
        server.should_exit = True
        await status_task
        status_socket.unlink(missing_ok=True)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the installer process."""
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("usage: install-protocol-installer <bundle_identifier>", file=sys.stderr)
        return 2

    bundle_identifier = argv[0]
    config = get_config()
    logger = setup_logger(config.log_file, "installer", bundle_identifier, level=logging.INFO)
    logger.info(f"Installer starting for {bundle_identifier}...")

    try:
        steps = load_steps(config.installer_steps)
    except InvalidConfiguration as e:
        logger.error(str(e))
        return 1

    state = asyncio.run(run_installer(bundle_identifier, steps, config))
    logger.info("Installer shutting down...")
    return 0 if state is LifecycleState.FINISHED else 1


if __name__ == "__main__":
    sys.exit(main())
