"""Controller configuration.

Configuration lives in a YAML file read and written with ruamel.yaml so that
comments and formatting survive a round trip.
"""

import shutil
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from cluster_controller.exceptions import ConfigurationError
from cluster_controller.logging_config import get_logger
from cluster_controller.scheme import KindInfo

logger = get_logger(__name__)


class ControllerConfig(BaseModel):
    """Runtime settings for the cluster controller."""

    namespace: str | None = None
    max_concurrent_reconciles: int = Field(default=10, ge=1)
    delete_requeue_after: float = Field(default=5.0, gt=0)
    remote_connection_probe_interval: float = Field(default=10.0, gt=0)
    remote_connection_probe_timeout: float = Field(default=5.0, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    watch_timeout_seconds: int = Field(default=300, ge=1)
    rate_limit_base_delay: float = Field(default=0.005, gt=0)
    rate_limit_max_delay: float = Field(default=1000.0, gt=0)
    require_delete_approval_for_topology: bool = True
    provider_kinds: list[KindInfo] = Field(default_factory=list)

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str | None) -> str | None:
        """Treat an empty namespace as "all namespaces"."""
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("rate_limit_max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        base = info.data.get("rate_limit_base_delay")
        if base is not None and v < base:
            raise ValueError("rate_limit_max_delay must not be smaller than rate_limit_base_delay")
        return v


class ConfigManager:
    """Read, validate and write the controller configuration file."""

    def __init__(self, config_path: str | Path):
        """Initialize config manager.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        self.yaml = YAML()
        self.yaml.preserve_quotes = True
        self.yaml.default_flow_style = False
        self.yaml.indent(mapping=2, sequence=2, offset=0)

    def read(self) -> dict:
        """Read the configuration file and return the parsed data.

        Raises:
            ConfigurationError: If the file is missing, empty or not valid YAML
        """
        logger.debug(f"Reading configuration file: {self.config_path}")

        if not self.config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self.config_path}",
                f"Expected location: {self.config_path.absolute()}\n"
                "Create the file or specify a different path with --config",
            )

        try:
            with open(self.config_path) as f:
                data = self.yaml.load(f)
        except YAMLError as e:
            raise ConfigurationError(
                f"Failed to parse configuration file: {self.config_path}",
                f"The file has invalid YAML syntax: {e}",
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read configuration file: {self.config_path}", str(e)
            ) from e

        if data is None:
            raise ConfigurationError(
                "Configuration file is empty",
                "The file exists but contains no settings. Remove it to use the defaults.",
            )
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration file must contain a mapping of settings",
                f"Found {type(data).__name__} at the top level of {self.config_path}",
            )
        return data

    def load(self) -> ControllerConfig:
        """Read and validate the configuration.

        Raises:
            ConfigurationError: If the file cannot be read or a setting is invalid
        """
        data = self.read()
        try:
            config = ControllerConfig.model_validate(dict(data))
        except ValidationError as e:
            problems = "\n".join(
                f"  {'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(
                f"Invalid configuration in {self.config_path}", problems
            ) from e
        logger.info(f"Loaded configuration from {self.config_path}")
        return config

    def write(self, config: ControllerConfig) -> None:
        """Write the configuration, keeping a backup of the previous file.

        Settings already present in the file are updated in place so that
        their comments are preserved.

        Raises:
            ConfigurationError: If the file cannot be written
        """
        data = self.read() if self.config_path.exists() else {}
        defaults = ControllerConfig().model_dump(mode="json")
        for key, value in config.model_dump(mode="json").items():
            if key in data or value != defaults[key]:
                data[key] = value

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            if self.config_path.exists():
                backup_path = self.config_path.with_suffix(self.config_path.suffix + ".backup")
                logger.debug(f"Creating backup at: {backup_path}")
                shutil.copy2(self.config_path, backup_path)

            with open(self.config_path, "w") as f:
                self.yaml.dump(data, f)
        except PermissionError as e:
            raise ConfigurationError(
                f"Permission denied writing configuration file: {self.config_path}",
                "Check file permissions or try running with appropriate privileges",
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f"Failed to write configuration file: {e}",
                "Check disk space and file system permissions",
            ) from e

        logger.info(f"Successfully wrote configuration file: {self.config_path}")


def load_config(config_path: str | Path | None) -> ControllerConfig:
    """Load the configuration file, or return the defaults when no path is given."""
    if config_path is None:
        return ControllerConfig()
    return ConfigManager(config_path).load()
