"""Process-wide protocol configuration table.

Loaded once at process start and never mutated afterwards. Environment
variables prefixed with INSTALL_PROTOCOL_ override the defaults at load time.
"""

import logging
import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from install_protocol.exceptions import InvalidConfiguration
from install_protocol.models.installation import InstallationType

ENV_PREFIX = "INSTALL_PROTOCOL_"
ENV_FIELDS = (
    "archive_key",
    "socket_dir",
    "state_dir",
    "log_file",
    "ping_interval",
    "alive_timeout",
    "installer_steps",
)


class ProtocolConfig(BaseModel):
    """Immutable configuration table shared by updater and installer."""

    model_config = ConfigDict(frozen=True)

    installation_types: tuple[InstallationType, ...] = Field(
        default=tuple(InstallationType), description="Recognized installation types"
    )
    default_installation_type: InstallationType = Field(
        InstallationType.APPLICATION, description="Type used when none is requested"
    )
    archive_key: str = Field(
        "AppcastItemArchive",
        min_length=1,
        description="Payload field naming the appcast item's archive descriptor",
    )
    socket_dir: str = Field("./tmp/sockets", description="Directory holding service sockets")
    state_dir: str = Field("./tmp/state", description="Directory holding installation records")
    log_file: str = Field("./logs/install_protocol.log", description="Rotating log file")
    ping_interval: float = Field(2.0, gt=0, description="Seconds between AlivePing messages")
    alive_timeout: float = Field(10.0, gt=0, description="Seconds of silence before the peer is dead")
    installer_steps: Optional[str] = Field(
        None, description="Import path (module:factory) of the InstallerSteps implementation"
    )

    @model_validator(mode="after")
    def timeout_exceeds_interval(self) -> "ProtocolConfig":
        """A peer must be allowed to miss at least one ping."""
        if self.alive_timeout <= self.ping_interval:
            raise ValueError("alive_timeout must be greater than ping_interval")
        if self.default_installation_type not in self.installation_types:
            raise ValueError("default_installation_type must be a recognized type")
        return self

    def is_valid_installation_type(self, value: Optional[str]) -> bool:
        """Check membership in the recognized installation types (None is invalid)."""
        if value is None:
            return False
        return value in {t.value for t in self.installation_types}


def load_config(environ: Optional[dict] = None) -> ProtocolConfig:
    """Build a ProtocolConfig from defaults plus environment overrides.

    Args:
        environ: Mapping to read overrides from (default os.environ)

    Returns:
        Validated, frozen ProtocolConfig
    """
    environ = os.environ if environ is None else environ
    overrides = {}
    for field_name in ENV_FIELDS:
        value = environ.get(ENV_PREFIX + field_name.upper())
        if value is not None:
            overrides[field_name] = value
    config = ProtocolConfig(**overrides)
    logging.getLogger("install_protocol.config").debug(f"Loaded protocol config: {config}")
    return config


@lru_cache(maxsize=1)
def get_config() -> ProtocolConfig:
    """Return the process-wide configuration, loading it on first access."""
    return load_config()


def validate_installation_type(
    value: Optional[str], config: Optional[ProtocolConfig] = None
) -> InstallationType:
    """Validate an installation-type string before any channel is opened.

    Args:
        value: Candidate installation type string
        config: Configuration table (default get_config())

    Returns:
        Matching InstallationType

    Raises:
        InvalidConfiguration: If value is None or not a recognized type
    """
    config = config or get_config()
    if not config.is_valid_installation_type(value):
        raise InvalidConfiguration(
            f"Unrecognized installation type: {value!r}",
            context={"allowed": [t.value for t in config.installation_types]},
        )
    return InstallationType(value)
