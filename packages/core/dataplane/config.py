"""Client configuration: where the Data Plane API lives and how hard to retry."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from dataplane.errors import ConfigError

SUPPORTED_API_VERSIONS = ("v2", "v3")
DEFAULT_API_VERSION = "v3"

# env var -> config field
ENV_VARS: dict[str, str] = {
    "DATAPLANE_URL": "url",
    "DATAPLANE_USERNAME": "username",
    "DATAPLANE_PASSWORD": "password",
    "DATAPLANE_INSECURE": "insecure",
    "DATAPLANE_API_VERSION": "api_version",
    "DATAPLANE_TIMEOUT": "timeout",
}

_TRUTHY = {"1", "true", "yes", "on"}


class DataplaneConfig(BaseModel):
    url: str
    username: str
    password: str = Field(repr=False)
    insecure: bool = False
    api_version: Literal["v2", "v3"] = DEFAULT_API_VERSION
    timeout: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=10, ge=1)
    retry_delay: float = Field(default=2.0, ge=0)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Data Plane URL {v!r} must start with http:// or https://")
        return v

    @field_validator("api_version", mode="before")
    @classmethod
    def normalize_api_version(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            if v and not v.startswith("v"):
                v = f"v{v}"
        return v

    @classmethod
    def from_sources(
        cls,
        file_values: Mapping[str, Any] | None = None,
        env: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> DataplaneConfig:
        """Merge config file < environment < explicit overrides.

        Overrides set to None are ignored so CLI options can be passed through
        unconditionally.
        """
        merged: dict[str, Any] = dict(file_values or {})
        merged.update(_from_env(os.environ if env is None else env))
        merged.update({k: v for k, v in overrides.items() if v is not None})

        missing = [f for f in ("url", "username", "password") if not merged.get(f)]
        if missing:
            raise ConfigError(
                f"Missing Data Plane setting(s): {', '.join(missing)}. "
                "Pass them as options, set DATAPLANE_* environment variables, "
                "or add them to .dataplane/config.yaml."
            )
        try:
            return cls.model_validate(merged)
        except ValidationError as exc:
            raise ConfigError(f"Invalid Data Plane configuration: {exc}") from exc


def _from_env(env: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for var, field_name in ENV_VARS.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        if field_name == "insecure":
            values[field_name] = raw.strip().lower() in _TRUTHY
        else:
            values[field_name] = raw
    return values
