"""
Client configuration.

Settings come from dataclass defaults, optionally a YAML file, then
MUMBLE_* environment variables, then command line options.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from mumble_shared.errors import ConfigError
from mumble_shared.utils import DEFAULT_PORT, encode_version

__version__ = "0.1.0"

# Comfortably below the usual 30s idle timeout of voice servers
DEFAULT_PING_INTERVAL = 28.0

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return _is_int(value) or isinstance(value, float)


@dataclass
class ClientSettings:
    host: str = "localhost"
    port: int = DEFAULT_PORT
    username: str = "justabot"
    password: Optional[str] = None
    tokens: List[str] = field(default_factory=list)
    verify_certificate: bool = True
    cafile: Optional[Path] = None
    certfile: Optional[Path] = None
    keyfile: Optional[Path] = None
    ping_interval: float = DEFAULT_PING_INTERVAL
    open_timeout: float = 10.0
    client_name: str = "mumble-control"
    protocol_version: Tuple[int, int, int] = (1, 2, 5)
    log_level: str = "INFO"
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def release_string(self) -> str:
        return f"{self.client_name} {__version__}"

    @property
    def encoded_version(self) -> int:
        return encode_version(*self.protocol_version)

    def validate(self) -> None:
        """
        Raises:
            ConfigError: if a field is out of range.
        """
        if not isinstance(self.username, str) or not self.username:
            raise ConfigError("username must be a non-empty string")
        if not isinstance(self.host, str) or not self.host:
            raise ConfigError("host must be a non-empty string")
        if not _is_int(self.port) or not 0 < self.port <= 65535:
            raise ConfigError(f"port must be between 1 and 65535, got {self.port!r}")
        for name in ("ping_interval", "open_timeout"):
            value = getattr(self, name)
            if not _is_number(value) or value <= 0:
                raise ConfigError(f"{name} must be a positive number, got {value!r}")
        if self.password is not None and not isinstance(self.password, str):
            raise ConfigError("password must be a string")
        if not isinstance(self.client_name, str) or not isinstance(self.log_level, str):
            raise ConfigError("client_name and log_level must be strings")
        if not isinstance(self.verify_certificate, bool):
            raise ConfigError(f"verify_certificate must be true or false, got {self.verify_certificate!r}")
        if not isinstance(self.tokens, list) or not all(isinstance(token, str) for token in self.tokens):
            raise ConfigError(f"tokens must be a list of strings, got {self.tokens!r}")
        if self.keyfile is not None and self.certfile is None:
            raise ConfigError("keyfile given without certfile")
        if (not isinstance(self.protocol_version, tuple) or len(self.protocol_version) != 3
                or not all(_is_int(part) and part >= 0 for part in self.protocol_version)):
            raise ConfigError(f"protocol_version must be (major, minor, patch), got {self.protocol_version!r}")

    @classmethod
    def from_file(cls, path: Optional[Path]) -> "ClientSettings":
        """Load settings from a YAML file; a missing file yields defaults."""
        if path is None or not path.exists():
            return cls()

        try:
            with path.open("r", encoding="utf-8") as fp:
                raw = yaml.safe_load(fp) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"{path} must contain a mapping, got {type(raw).__name__}")

        known = {f.name for f in fields(cls)} - {"extra"}
        kwargs: Dict[str, Any] = {key: value for key, value in raw.items() if key in known}
        for key in ("cafile", "certfile", "keyfile"):
            if kwargs.get(key) is None:
                continue
            if not isinstance(kwargs[key], str):
                raise ConfigError(f"{key} must be a path, got {kwargs[key]!r}")
            kwargs[key] = Path(kwargs[key]).expanduser()
        if isinstance(kwargs.get("protocol_version"), list):
            kwargs["protocol_version"] = tuple(kwargs["protocol_version"])

        settings = cls(**kwargs)
        settings.extra.update({key: value for key, value in raw.items() if key not in known})
        settings.validate()
        return settings

    @classmethod
    def from_env(cls, base: Optional["ClientSettings"] = None) -> "ClientSettings":
        """Apply MUMBLE_* environment overrides on top of ``base``."""
        settings = base or cls()
        overrides: Dict[str, Any] = {}
        if os.getenv("MUMBLE_HOST"):
            overrides["host"] = os.environ["MUMBLE_HOST"]
        if os.getenv("MUMBLE_PORT"):
            try:
                overrides["port"] = int(os.environ["MUMBLE_PORT"])
            except ValueError as e:
                raise ConfigError(f"MUMBLE_PORT is not a number: {os.environ['MUMBLE_PORT']!r}") from e
        if os.getenv("MUMBLE_USERNAME"):
            overrides["username"] = os.environ["MUMBLE_USERNAME"]
        if os.getenv("MUMBLE_PASSWORD"):
            overrides["password"] = os.environ["MUMBLE_PASSWORD"]
        if os.getenv("MUMBLE_INSECURE"):
            overrides["verify_certificate"] = os.environ["MUMBLE_INSECURE"].lower() not in _TRUE_VALUES
        if os.getenv("MUMBLE_CAFILE"):
            overrides["cafile"] = Path(os.environ["MUMBLE_CAFILE"]).expanduser()
        if os.getenv("MUMBLE_CERTFILE"):
            overrides["certfile"] = Path(os.environ["MUMBLE_CERTFILE"]).expanduser()
        if os.getenv("MUMBLE_KEYFILE"):
            overrides["keyfile"] = Path(os.environ["MUMBLE_KEYFILE"]).expanduser()
        return replace(settings, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        """Current settings without the password (useful for logs)."""
        return {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "verify_certificate": self.verify_certificate,
            "cafile": str(self.cafile) if self.cafile else None,
            "certfile": str(self.certfile) if self.certfile else None,
            "keyfile": str(self.keyfile) if self.keyfile else None,
            "ping_interval": self.ping_interval,
            "open_timeout": self.open_timeout,
            "release": self.release_string,
            "protocol_version": ".".join(str(part) for part in self.protocol_version),
            "log_level": self.log_level,
            "extra": self.extra,
        }
