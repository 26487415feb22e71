"""Configuration for textprov.

Supports:
- Environment variable configuration (TEXTPROV_* prefix)
- YAML file configuration
- Runtime overrides via dataclasses.replace
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from textprov import __version__

DEFAULT_GENERATOR = "textprov"
DEFAULT_FORMAT = "text/plain"
DEFAULT_SCITT_SERVICE_URL = "demo://local"
DEFAULT_SCITT_LOG_ID = "demo-log"


@dataclass(frozen=True)
class Settings:
    """Runtime settings.

    Defaults are safe for local use: the transparency service is the
    simulated one and the HTTP API has no authentication.
    """

    claim_generator: str = DEFAULT_GENERATOR
    claim_generator_version: str = __version__
    content_format: str = DEFAULT_FORMAT
    scitt_service_url: str = DEFAULT_SCITT_SERVICE_URL
    scitt_log_id: str = DEFAULT_SCITT_LOG_ID
    scitt_timeout: float = 10.0
    api_key: str | None = field(default=None, repr=False)
    cors_origins: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.claim_generator:
            raise ValueError("claim_generator must not be empty")
        if not self.scitt_service_url:
            raise ValueError("scitt_service_url must not be empty")
        if self.scitt_timeout <= 0:
            raise ValueError(f"scitt_timeout must be > 0, got {self.scitt_timeout}")
        object.__setattr__(self, "cors_origins", tuple(self.cors_origins))

    @property
    def simulated_transparency(self) -> bool:
        return self.scitt_service_url.startswith("demo://")

    @classmethod
    def from_env(cls) -> Settings:
        """
        Create settings from environment variables.

        Environment variables:
            TEXTPROV_CLAIM_GENERATOR: Claim generator name
            TEXTPROV_CLAIM_GENERATOR_VERSION: Claim generator version
            TEXTPROV_CONTENT_FORMAT: MIME type recorded in claims
            TEXTPROV_SCITT_SERVICE_URL: Transparency service URL (demo:// = simulated)
            TEXTPROV_SCITT_LOG_ID: Transparency log identifier
            TEXTPROV_SCITT_TIMEOUT: Submission timeout in seconds
            TEXTPROV_API_KEY: Bearer key required by the HTTP API
            TEXTPROV_CORS_ORIGINS: Comma-separated allowed origins
            TEXTPROV_CONFIG: Optional YAML file loaded before the variables above
        """
        config_path = os.getenv("TEXTPROV_CONFIG")
        base = cls.from_yaml(Path(config_path)) if config_path else cls()

        timeout_str = os.getenv("TEXTPROV_SCITT_TIMEOUT")
        try:
            timeout = float(timeout_str) if timeout_str else base.scitt_timeout
        except ValueError as e:
            raise ValueError(f"Invalid TEXTPROV_SCITT_TIMEOUT: {timeout_str!r}") from e

        origins_env = os.getenv("TEXTPROV_CORS_ORIGINS", "")
        origins = (
            tuple(o.strip() for o in origins_env.split(",") if o.strip())
            if origins_env
            else base.cors_origins
        )

        return cls(
            claim_generator=os.getenv("TEXTPROV_CLAIM_GENERATOR", base.claim_generator),
            claim_generator_version=os.getenv(
                "TEXTPROV_CLAIM_GENERATOR_VERSION", base.claim_generator_version
            ),
            content_format=os.getenv("TEXTPROV_CONTENT_FORMAT", base.content_format),
            scitt_service_url=os.getenv("TEXTPROV_SCITT_SERVICE_URL", base.scitt_service_url),
            scitt_log_id=os.getenv("TEXTPROV_SCITT_LOG_ID", base.scitt_log_id),
            scitt_timeout=timeout,
            api_key=os.getenv("TEXTPROV_API_KEY") or base.api_key,
            cors_origins=origins,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create settings from dictionary (e.g., YAML). Unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        values = dict(data)
        if "cors_origins" in values:
            values["cors_origins"] = tuple(values["cors_origins"] or ())
        if "scitt_timeout" in values:
            values["scitt_timeout"] = float(values["scitt_timeout"])
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> Settings:
        """Load settings from a YAML file."""
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file must contain a mapping: {path}")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary (API key redacted)."""
        return {
            "claim_generator": self.claim_generator,
            "claim_generator_version": self.claim_generator_version,
            "content_format": self.content_format,
            "scitt_service_url": self.scitt_service_url,
            "scitt_log_id": self.scitt_log_id,
            "scitt_timeout": self.scitt_timeout,
            "api_key": "***" if self.api_key else None,
            "cors_origins": list(self.cors_origins),
        }
