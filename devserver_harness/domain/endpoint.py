"""Endpoint and dev server version models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, computed_field, model_validator


PORT_PROPERTY = "app.devserver.port"
ADMIN_PORT_PROPERTY = "app.devserver.adminPort"
VERSION_PROPERTY = "app.devserver.version"


class DevServerVersion(str, Enum):
    """Supported dev server variants."""

    V1 = "1"
    V2_ALPHA = "2-alpha"

    @property
    def requires_admin_port(self) -> bool:
        return self is DevServerVersion.V2_ALPHA

    @property
    def version_selector(self) -> str | None:
        """Value of the version system property, or None for the default server."""
        if self is DevServerVersion.V2_ALPHA:
            return self.value
        return None


class ServiceEndpoint(BaseModel):
    """Ports reserved for one running dev server."""

    host: str = Field(default="localhost", min_length=1)
    port: int = Field(..., gt=0, lt=65536)
    admin_port: int | None = Field(default=None, gt=0, lt=65536)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _distinct_ports(self) -> "ServiceEndpoint":
        if self.admin_port is not None and self.admin_port == self.port:
            raise ValueError("admin_port must differ from port")
        return self

    @computed_field
    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"


def system_properties_for(
    version: DevServerVersion, endpoint: ServiceEndpoint | None = None
) -> dict[str, str]:
    """Build-tool system properties selecting the server port and variant.

    The admin port and version selector are only set for variants that
    run an admin interface.
    """
    props: dict[str, str] = {}
    if endpoint is not None:
        props[PORT_PROPERTY] = str(endpoint.port)
    if version.requires_admin_port:
        if endpoint is not None:
            if endpoint.admin_port is None:
                raise ValueError(f"{version.name} needs an endpoint with an admin port")
            props[ADMIN_PORT_PROPERTY] = str(endpoint.admin_port)
        props[VERSION_PROPERTY] = version.version_selector
    return props
