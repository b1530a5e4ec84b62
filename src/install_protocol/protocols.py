"""Capability interfaces consumed by the protocol layer.

Apps provide the implementations; the library only requires these interfaces.
"""

from typing import Awaitable, Callable, Protocol

from install_protocol.models.installation import InstallationData


class VersionDisplay(Protocol):
    """Applies display formatting to a pair of version strings.

    Both versions are provided so that distinguishing information can be shown
    while omitting unnecessary or confusing data. Presentation only; never
    used for protocol decisions.
    """

    def format_versions(self, version_a: str, version_b: str) -> tuple[str, str]:
        ...


class PlainVersionDisplay:
    """VersionDisplay that leaves both versions unchanged."""

    def format_versions(self, version_a: str, version_b: str) -> tuple[str, str]:
        return version_a, version_b


class InstallerSteps(Protocol):
    """The extraction, validation and installation work of the installer.

    The protocol layer only reports that these steps happened or failed.

    Example implementations:
    - ApplicationSteps: replace an app bundle in place
    - PackageSteps: hand a package to the system installer
    """

    async def extract(
        self, data: InstallationData, report_progress: Callable[[float], Awaitable[None]]
    ) -> None:
        """Extract the downloaded archive, reporting progress fractions.

        Raises:
            Exception: If extraction fails (reported as ARCHIVE_EXTRACTION_FAILED)
        """
        ...

    async def validate(self, data: InstallationData) -> None:
        """Validate the extracted update (signatures, code signing)."""
        ...

    async def install_stage1(self, data: InstallationData) -> None:
        """Prepare the installation; may run while the updater is alive."""
        ...

    async def install_stage2(self, data: InstallationData) -> None:
        """Perform the installation; may run after the updater has exited."""
        ...

    async def install_stage3(self, data: InstallationData) -> None:
        """Clean up and relaunch."""
        ...
