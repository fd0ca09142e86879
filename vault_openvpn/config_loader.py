"""
Configuration loading, validation, and parsing.

Settings are layered: built-in defaults, then an optional YAML file,
then environment variables, then command-line overrides.
"""

import os
import re
from dataclasses import dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .helpers import parse_duration
from .logger import LOG_LEVELS, get_logger


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


DEFAULT_VAULT_ADDR = "https://127.0.0.1:8200"
DEFAULT_TOKEN_FILE = "~/.vault-token"

# Environment variables understood by the Vault CLI
ENV_VARIABLES = {
    "VAULT_ADDR": "vault_addr",
    "VAULT_TOKEN": "vault_token",
    "VAULT_NAMESPACE": "vault_namespace",
    "VAULT_CACERT": "ca_cert",
    "VAULT_SKIP_VERIFY": "skip_verify",
    "VAULT_CLIENT_TIMEOUT": "timeout",
}

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")

# Settings that may be left unset (null in YAML)
_NULLABLE_FIELDS = ("vault_namespace", "ca_cert")


@dataclass
class Settings:
    """Resolved runtime settings."""
    vault_addr: str = DEFAULT_VAULT_ADDR
    vault_token: str = ""
    vault_namespace: Optional[str] = None
    ca_cert: Optional[str] = None
    skip_verify: bool = False
    timeout: float = 60.0
    pki_mountpoint: str = "/pki"
    pki_role: str = "openvpn"
    auto_revoke: bool = True
    ttl: str = "8760h"
    log_level: str = "info"
    template_dir: str = "."

    @property
    def ttl_duration(self) -> timedelta:
        """TTL parsed into a timedelta."""
        return parse_duration(self.ttl)

    @property
    def mount(self) -> str:
        """PKI mount point without surrounding slashes."""
        return self.pki_mountpoint.strip("/")


def read_token_file(path: str = DEFAULT_TOKEN_FILE) -> str:
    """
    Read a Vault token from disk (the file `vault login` writes).

    Args:
        path: Token file path, "~" is expanded

    Returns:
        Token string, or an empty string if the file cannot be read
    """
    try:
        return Path(path).expanduser().read_text().strip()
    except OSError:
        return ""


def _expand_env_vars(value: Any) -> Any:
    """
    Expand environment variables in string values.

    Supports ${VAR_NAME} syntax.

    Args:
        value: Value to expand (string, dict, or list)

    Returns:
        Value with environment variables expanded
    """
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"

        def replace(match):
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))

        return re.sub(pattern, replace, value)

    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]

    return value


def _parse_bool(name: str, value: Any) -> bool:
    """Interpret a YAML or environment value as a boolean."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean for {name}: '{value}'")


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw value to the type of the matching Settings field."""
    if value is None:
        if name in _NULLABLE_FIELDS:
            return None
        raise ConfigurationError(f"{name} must not be null")

    if name in ("skip_verify", "auto_revoke"):
        return _parse_bool(name, value)

    if name == "timeout":
        text = str(value).strip()
        try:
            # VAULT_CLIENT_TIMEOUT accepts both "30" and "30s"
            if text and text[-1].isalpha():
                return parse_duration(text).total_seconds()
            return float(text)
        except ValueError:
            raise ConfigurationError(f"Invalid timeout: '{value}'")

    return str(value)


def load_config_file(config_path: str) -> Dict[str, Any]:
    """
    Load raw settings from a YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Mapping of settings field names to raw values

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    if path.suffix not in (".yaml", ".yml"):
        raise ConfigurationError(
            f"Configuration file must be YAML (.yaml or .yml): {config_path}"
        )

    try:
        with open(path, "r") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
    except IOError as e:
        raise ConfigurationError(f"Failed to read configuration file: {e}")

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ConfigurationError("Configuration file must contain a mapping")

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(raw_data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

    return _expand_env_vars(raw_data)


def _from_environment(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect settings from VAULT_* environment variables."""
    return {
        field_name: environ[env_name]
        for env_name, field_name in ENV_VARIABLES.items()
        if environ.get(env_name)
    }


def validate_settings(settings: Settings) -> Settings:
    """
    Validate resolved settings.

    Raises:
        ConfigurationError: If any value is invalid
    """
    if not settings.vault_addr.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"Vault address must start with http:// or https://: {settings.vault_addr}"
        )
    if not settings.vault_token:
        raise ConfigurationError(
            "You need to set vault-token (--vault-token, VAULT_TOKEN or ~/.vault-token)"
        )
    if not settings.mount:
        raise ConfigurationError("PKI mount point must not be empty")
    if not settings.pki_role:
        raise ConfigurationError("PKI role must not be empty")
    if settings.timeout <= 0:
        raise ConfigurationError(f"Timeout must be positive: {settings.timeout}")

    try:
        settings.ttl_duration
    except ValueError as e:
        raise ConfigurationError(f"Invalid TTL: {e}")

    if settings.log_level.lower() not in LOG_LEVELS:
        raise ConfigurationError(
            f"Invalid log level '{settings.log_level}'. "
            f"Must be one of: {', '.join(LOG_LEVELS)}"
        )

    return settings


def load_settings(
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    token_file: str = DEFAULT_TOKEN_FILE,
) -> Settings:
    """
    Resolve and validate settings from all sources.

    Precedence (lowest to highest): defaults, token file, YAML file,
    environment, overrides. Override values of None are ignored.

    Args:
        config_path: Optional YAML configuration file
        overrides: Values given on the command line
        environ: Environment mapping (defaults to os.environ)
        token_file: Token file used when no token is configured elsewhere

    Returns:
        Validated Settings instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    logger = get_logger()
    environ = os.environ if environ is None else environ

    values: Dict[str, Any] = {}

    token = read_token_file(token_file)
    if token:
        values["vault_token"] = token

    if config_path:
        values.update(load_config_file(config_path))
        logger.debug(f"Loaded configuration from {config_path}")

    values.update(_from_environment(environ))
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})

    settings = Settings(**{name: _coerce(name, value) for name, value in values.items()})
    validate_settings(settings)

    logger.debug(f"Vault address: {settings.vault_addr}")
    logger.debug(f"PKI mount: {settings.mount}, role: {settings.pki_role}")

    return settings
