"""Payload models for the configuration objects a bundle manages.

Only the fields callers usually care about are declared; anything else the
API accepts (timeouts, SSL options, log formats, ...) passes through as an
extra field and is sent back verbatim.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_api(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Balance(BaseModel):
    model_config = ConfigDict(extra="allow")

    algorithm: str = "roundrobin"


class Backend(Payload):
    name: str
    mode: str | None = None
    balance: Balance | None = None
    retries: int | None = None
    connect_timeout: int | None = None
    server_timeout: int | None = None


class Frontend(Payload):
    name: str
    mode: str | None = None
    default_backend: str | None = None
    maxconn: int | None = None
    client_timeout: int | None = None


class Server(Payload):
    name: str
    address: str
    port: int | None = Field(default=None, ge=1, le=65535)
    check: str | None = None
    weight: int | None = None
    maxconn: int | None = None


class Bind(Payload):
    name: str
    address: str | None = None
    port: int | None = Field(default=None, ge=1, le=65535)
    ssl: bool | None = None
    ssl_certificate: str | None = None


class ACL(Payload):
    acl_name: str
    # None until the bundle assigns the entry's list position
    index: int | None = Field(default=None, ge=0)
    criterion: str
    value: str = ""


class Rule(Payload):
    """An indexed proxy rule: http/tcp request or response rule, http-check or tcp-check.

    ``type`` (or ``action`` for tcp-checks) selects the rule flavour;
    everything else (``cond``, ``cond_test``, ``hdr_name``, ``expect`` ...)
    rides along as extra fields.
    """

    index: int | None = Field(default=None, ge=0)
    type: str | None = None
