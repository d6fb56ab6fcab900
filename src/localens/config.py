"""Central Configuration System for LocaLens.

This module is the single source of truth for application configuration.
Every other module that needs settings imports from here.

The configuration system supports:
- Multi-source configuration (environment variables > config file > defaults)
- Secure API key management (env > keyring > encrypted file)
- An ordered, immutable model attempt list built once per process

Example:
    >>> from localens.config import get_config, get_api_key
    >>>
    >>> cfg = get_config()
    >>> for attempt in cfg.ai.attempt_plan():
    ...     print(attempt.model)
    >>> api_key = get_api_key()

Config File Format (YAML):
    ```yaml
    ai:
      enable_search: true
      timeout_seconds: 120
      attempts:
        - model: gemini-2.5-flash
          thinking_budget: 24576
          label: High Reasoning (Flash 2.5)
        - model: gemini-2.0-flash
          thinking_budget: 0
          label: Standard (Flash 2.0)

    report:
      title: LocaLens Analysis
      include_image_preview: true
      map_delta: 0.005

    paths:
      config_dir: ~/.localens
      output_dir: ./output

    debug: false
    verbose: false
    ```
"""

from __future__ import annotations

import base64
import functools
import logging
import os
import platform
import stat
from enum import Enum
from pathlib import Path
from typing import Any

import keyring
import keyring.errors
import yaml
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from localens.core.models import DEFAULT_MAP_DELTA, DEFAULT_MODEL_ATTEMPTS, ModelAttempt
from localens.errors import LocaLensError

# Configure module logger - never log secrets
logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class ConfigError(LocaLensError):
    """Base exception for configuration errors."""

    kind = "config"


class ConfigFileError(ConfigError):
    """Exception raised when a YAML config file exists but cannot be used."""


class APIKeyError(ConfigError):
    """Base exception for API key related issues."""


class APIKeyNotFoundError(APIKeyError):
    """Exception raised when API key cannot be found in any source."""


class APIKeyInvalidError(APIKeyError):
    """Exception raised when API key fails format validation.

    This does NOT indicate the key was rejected by the API - only that
    it fails basic format checks (length, whitespace, etc.).
    """


# =============================================================================
# Enums
# =============================================================================


class KeySource(str, Enum):
    """Sources from which API keys can be retrieved.

    The APIKeyManager tries sources in priority order: ENV → KEYRING → ENCRYPTED_FILE.

    Attributes:
        ENVIRONMENT: From GEMINI_API_KEY (or GOOGLE_API_KEY).
        KEYRING: From the system keyring.
        ENCRYPTED_FILE: From a machine-bound encrypted file under config_dir.
        NONE: No key configured in any source.
    """

    ENVIRONMENT = "environment"
    KEYRING = "keyring"
    ENCRYPTED_FILE = "encrypted_file"
    NONE = "none"


# =============================================================================
# Configuration Models
# =============================================================================


class AIConfig(BaseModel):
    """Configuration for the Gemini request pipeline.

    Attributes:
        attempts: Ordered fallback list, most capable model first.
        enable_search: Attach the Google Search grounding tool to requests.
        timeout_seconds: Per-attempt network timeout.

    Example:
        >>> ai_config = AIConfig(attempts=[ModelAttempt(model="gemini-2.0-flash")])
        >>> len(ai_config.attempt_plan())
        1
    """

    attempts: list[ModelAttempt] = Field(
        default_factory=lambda: list(DEFAULT_MODEL_ATTEMPTS),
        min_length=1,
        description="Ordered model fallback list, highest capability first.",
    )
    enable_search: bool = Field(
        default=True, description="Enable Google Search grounding for each request."
    )
    timeout_seconds: int = Field(
        default=120, ge=10, le=600, description="Per-attempt request timeout in seconds."
    )

    def attempt_plan(self) -> tuple[ModelAttempt, ...]:
        """Return the attempt list as an immutable tuple."""
        return tuple(self.attempts)


class ReportConfig(BaseModel):
    """Configuration for HTML report generation.

    Attributes:
        title: Report page title.
        include_image_preview: Embed the analyzed image as a data URI.
        map_delta: Half-width in degrees of the embedded map around each guess.
    """

    title: str = Field(default="LocaLens Analysis", description="HTML report title.")
    include_image_preview: bool = Field(
        default=True, description="Embed the analyzed image in the report."
    )
    map_delta: float = Field(
        default=DEFAULT_MAP_DELTA, gt=0.0, le=1.0, description="Map bounding box half-width."
    )


class PathsConfig(BaseModel):
    """Configuration for application file system paths.

    Attributes:
        config_dir: Base directory for configuration files. Default ~/.localens
        output_dir: Directory for generated reports. Default ./output
        encrypted_key_file: Path to encrypted API key file. Default config_dir/.api_key.enc
    """

    config_dir: Path = Field(
        default_factory=lambda: Path.home() / ".localens",
        description="Base configuration directory.",
    )
    output_dir: Path = Field(
        default_factory=lambda: Path.cwd() / "output",
        description="Output directory for generated reports.",
    )
    encrypted_key_file: Path | None = Field(
        default=None, description="Path to encrypted API key file."
    )

    @field_validator("config_dir", "output_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        """Expand ~ and resolve path."""
        if isinstance(v, (str, Path)):
            return Path(v).expanduser().resolve()
        return v

    @model_validator(mode="after")
    def resolve_defaults(self) -> "PathsConfig":
        if self.encrypted_key_file is None:
            self.encrypted_key_file = self.config_dir / ".api_key.enc"
        else:
            self.encrypted_key_file = Path(self.encrypted_key_file).expanduser().resolve()
        return self


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Supports loading from environment variables with the LOCALENS_ prefix
    and ``__`` as the nested delimiter (e.g. LOCALENS_AI__TIMEOUT_SECONDS).

    Configuration priority (highest wins):
    1. Environment variables (LOCALENS_*)
    2. Config file (YAML)
    3. In-code defaults
    """

    ai: AIConfig = Field(default_factory=AIConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    debug: bool = Field(default=False, description="Enable debug logging.")
    verbose: bool = Field(default=False, description="Enable verbose output.")
    log_file: Path | None = Field(default=None, description="Optional log file path.")

    model_config = {
        "env_prefix": "LOCALENS_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Init kwargs carry the YAML file; env values override them per field.
        return env_settings, init_settings, file_secret_settings

    def has_api_key(self) -> bool:
        """Check whether an API key is available from any source."""
        return APIKeyManager(paths_config=self.paths).get_key() is not None


# =============================================================================
# API Key Management
# =============================================================================


class APIKeyManager:
    """Secure management of the Gemini API key from multiple sources.

    Retrieves API keys trying sources in priority order:
    1. Environment variable (GEMINI_API_KEY, then GOOGLE_API_KEY)
    2. System keyring
    3. Encrypted file at the configured path

    Keys are wrapped in SecretStr to prevent accidental logging.

    Example:
        >>> manager = APIKeyManager()
        >>> key = manager.get_key()
        >>> if key:
        ...     print(f"Key source: {manager.get_key_source()}")
    """

    KEYRING_SERVICE = "localens"
    KEYRING_USERNAME = "gemini"
    ENV_VAR_NAMES = ("GEMINI_API_KEY", "GOOGLE_API_KEY")

    def __init__(self, paths_config: PathsConfig | None = None) -> None:
        self._paths_config = paths_config or PathsConfig()
        self._cached_key: SecretStr | None = None
        self._key_source: KeySource = KeySource.NONE

    def get_key(self) -> SecretStr | None:
        """Retrieve API key trying sources in priority order.

        Returns:
            SecretStr wrapper around the key, or None if not found.
        """
        if self._cached_key is not None:
            return self._cached_key

        for source, reader in (
            (KeySource.ENVIRONMENT, self._read_from_environment),
            (KeySource.KEYRING, self._read_from_keyring),
            (KeySource.ENCRYPTED_FILE, self._read_from_encrypted_file),
        ):
            key = reader()
            if key and self.validate_key_format(key):
                self._cached_key = SecretStr(key)
                self._key_source = source
                logger.debug(f"API key loaded from {source.value}")
                return self._cached_key

        self._key_source = KeySource.NONE
        logger.debug("No API key found in any source")
        return None

    def get_key_source(self) -> KeySource:
        return self._key_source

    def store_key(self, key: str, destination: KeySource) -> bool:
        """Store API key in the keyring or the encrypted file.

        Raises:
            APIKeyInvalidError: If key fails format validation.
            ConfigError: If destination is ENVIRONMENT or storage fails.
        """
        key = key.strip()
        if not self.validate_key_format(key):
            raise APIKeyInvalidError(
                "API key format validation failed. "
                "Key must be 20-100 characters with no whitespace."
            )

        if destination == KeySource.KEYRING:
            try:
                keyring.set_password(self.KEYRING_SERVICE, self.KEYRING_USERNAME, key)
            except keyring.errors.KeyringError as e:
                raise ConfigError(f"Failed to store key in keyring: {type(e).__name__}") from e
            self._clear_cache()
            logger.info("API key stored in system keyring")
            return True

        if destination == KeySource.ENCRYPTED_FILE:
            try:
                self._encrypt_to_file(key, self._key_file())
            except OSError as e:
                raise ConfigError(
                    f"Failed to store key in encrypted file: {type(e).__name__}"
                ) from e
            self._clear_cache()
            logger.info("API key stored in encrypted file")
            return True

        raise ConfigError(
            "Cannot store API key in environment variable. "
            "Set GEMINI_API_KEY manually in your environment."
        )

    def delete_key(self, source: KeySource) -> bool:
        """Remove API key from the specified source.

        Returns:
            True if deletion was successful or key didn't exist.

        Raises:
            ConfigError: If deletion fails or source is ENVIRONMENT.
        """
        if source == KeySource.KEYRING:
            try:
                keyring.delete_password(self.KEYRING_SERVICE, self.KEYRING_USERNAME)
            except keyring.errors.PasswordDeleteError:
                return True  # Key didn't exist
            except keyring.errors.KeyringError as e:
                raise ConfigError(f"Failed to delete key from keyring: {type(e).__name__}") from e
            self._clear_cache()
            logger.info("API key deleted from system keyring")
            return True

        if source == KeySource.ENCRYPTED_FILE:
            path = self._key_file()
            if path.exists():
                try:
                    path.unlink()
                except OSError as e:
                    raise ConfigError(f"Failed to delete key file: {type(e).__name__}") from e
                self._clear_cache()
                logger.info("API key file deleted")
            return True

        raise ConfigError(
            "Cannot delete environment variable. "
            "Unset GEMINI_API_KEY manually in your environment."
        )

    def validate_key_format(self, key: str) -> bool:
        """Validate API key format without making an API call.

        Checks: non-empty, 20-100 characters after stripping, no internal
        whitespace.
        """
        if not key:
            return False

        key = key.strip()
        if len(key) < 20 or len(key) > 100:
            return False

        return not any(c.isspace() for c in key)

    def _clear_cache(self) -> None:
        self._cached_key = None
        self._key_source = KeySource.NONE

    def _key_file(self) -> Path:
        path = self._paths_config.encrypted_key_file
        return path if path is not None else self._paths_config.config_dir / ".api_key.enc"

    def _read_from_environment(self) -> str | None:
        for name in self.ENV_VAR_NAMES:
            key = os.environ.get(name)
            if key:
                # Strip whitespace (common mistake)
                return key.strip()
        return None

    def _read_from_keyring(self) -> str | None:
        try:
            return keyring.get_password(self.KEYRING_SERVICE, self.KEYRING_USERNAME)
        except keyring.errors.KeyringError as e:
            # Keyring might not be available on headless systems
            logger.debug(f"Keyring access failed: {type(e).__name__}")
            return None

    def _read_from_encrypted_file(self) -> str | None:
        path = self._key_file()
        if not path.exists():
            return None

        try:
            fernet = Fernet(self._derive_encryption_key())
            return fernet.decrypt(path.read_bytes()).decode("utf-8")
        except InvalidToken:
            logger.warning(
                "Failed to decrypt API key file - key may have been created on a different machine"
            )
            return None
        except OSError as e:
            logger.warning(f"Failed to read encrypted key file: {type(e).__name__}")
            return None

    def _encrypt_to_file(self, key: str, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)

        fernet = Fernet(self._derive_encryption_key())
        path.write_bytes(fernet.encrypt(key.encode("utf-8")))

        # Owner read/write only (600)
        if platform.system() != "Windows":
            os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)

    def _derive_encryption_key(self) -> bytes:
        """Derive a Fernet key from machine-specific data.

        Files encrypted on one machine cannot be decrypted on another.
        """
        machine_data = [platform.node(), platform.machine(), platform.system()]

        machine_id_path = Path("/etc/machine-id")
        if machine_id_path.exists():
            try:
                machine_data.append(machine_id_path.read_text().strip())
            except OSError:
                logger.debug("Could not read /etc/machine-id")

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b"localens-key-salt-v1",
            iterations=100000,
        )
        return base64.urlsafe_b64encode(kdf.derive("|".join(machine_data).encode("utf-8")))


# =============================================================================
# Module-Level Functions
# =============================================================================


def _default_config_paths(path: Path | None) -> list[Path | None]:
    return [
        path,
        Path("./localens.yaml"),
        Path("./localens.yml"),
        Path.home() / ".localens" / "config.yaml",
        Path.home() / ".localens" / "config.yml",
    ]


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from file, environment, and defaults.

    If no config file is found, uses defaults only (not an error).
    If a config file is malformed, logs a warning and uses defaults.

    Args:
        path: Optional path to config file. If None, searches default locations.

    Returns:
        Fully-populated AppConfig instance.

    Raises:
        ConfigFileError: If an explicitly requested file does not exist.
    """
    if path is not None and not Path(path).exists():
        raise ConfigFileError(f"Config file not found: {path}")

    config_file: Path | None = None
    for search_path in _default_config_paths(Path(path) if path else None):
        if search_path is not None and search_path.exists():
            config_file = search_path
            break

    config_data: dict[str, Any] = {}
    if config_file is not None:
        try:
            loaded = yaml.safe_load(config_file.read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                config_data = loaded
            elif loaded is not None:
                logger.warning(f"Config file {config_file} has unexpected format. Using defaults.")
        except yaml.YAMLError as e:
            logger.warning(f"Failed to parse config file {config_file}: {e}. Using defaults.")
        except OSError as e:
            logger.warning(
                f"Failed to read config file {config_file}: {type(e).__name__}. Using defaults."
            )

    try:
        return AppConfig(**config_data)
    except ValidationError as e:
        logger.warning(f"Error parsing config values: {e.error_count()} errors. Using defaults.")
        return AppConfig()


@functools.lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Get the cached configuration singleton."""
    return load_config()


def get_api_key() -> SecretStr:
    """Convenience function to get the Gemini API key.

    Raises:
        APIKeyNotFoundError: If no API key is configured in any source.
    """
    config = get_config()
    key = APIKeyManager(paths_config=config.paths).get_key()

    if key is None:
        raise APIKeyNotFoundError(
            "No API key found. Set GEMINI_API_KEY environment variable, "
            "store it in the system keyring, or run 'localens config set-key'."
        )

    return key


def reset_config() -> None:
    """Clear the configuration cache for testing."""
    get_config.cache_clear()
