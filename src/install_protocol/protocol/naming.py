"""Deterministic per-application endpoint naming.

Both processes derive the same names from the host bundle identifier, so no
discovery step or shared registry is needed. No validation of the identifier
happens here.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

INSTALLER_SERVICE_SUFFIX = "spki"
STATUS_INFO_SERVICE_SUFFIX = "spks"
PROGRESS_AGENT_SERVICE_SUFFIX = "spkp"


def _service_name(bundle_identifier: str, suffix: str) -> str:
    return f"{bundle_identifier}-{suffix}"


def installer_service_name(bundle_identifier: str) -> str:
    """Name of the service the installer hosts for updater connections."""
    return _service_name(bundle_identifier, INSTALLER_SERVICE_SUFFIX)


def status_info_service_name(bundle_identifier: str) -> str:
    """Name of the service answering "is an install in progress?" queries."""
    return _service_name(bundle_identifier, STATUS_INFO_SERVICE_SUFFIX)


def progress_agent_service_name(bundle_identifier: str) -> str:
    """Name of the service of the agent that presents install progress."""
    return _service_name(bundle_identifier, PROGRESS_AGENT_SERVICE_SUFFIX)


def launch_label(bundle_identifier: str, role: str) -> str:
    """Job label for a launched helper process (role: "installer" or "progress")."""
    return f"{bundle_identifier}-{role}"


def service_socket_path(service_name: str, directory: Union[str, Path]) -> Path:
    """Local socket path the transport binds for a service name."""
    return Path(directory) / f"{service_name}.sock"


@dataclass(frozen=True)
class EndpointIdentity:
    """The three service names of one application.

    Computed fresh on each lookup; bundle identifiers do not change during a run.
    """

    installer_service: str
    status_info_service: str
    progress_agent_service: str

    @classmethod
    def for_bundle_identifier(cls, bundle_identifier: str) -> "EndpointIdentity":
        return cls(
            installer_service=installer_service_name(bundle_identifier),
            status_info_service=status_info_service_name(bundle_identifier),
            progress_agent_service=progress_agent_service_name(bundle_identifier),
        )
