"""
Pydantic models for the YAML configuration file.

Layout:
    cidr: 127.1.27.0/24
    contexts:
      - name: prod
        namespaces:
          - name: default
            services:
              - name: api
                aliases: [api.internal]
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ServiceEntry(_Strict):
    """A service inside a namespace."""

    name: str = Field(..., min_length=1, description="Service name")
    aliases: list[str] = Field(
        default_factory=list,
        description="Extra hostnames for this service",
    )

    @field_validator("aliases")
    @classmethod
    def _no_blank_aliases(cls, value: list[str]) -> list[str]:
        cleaned = [alias.strip() for alias in value]
        if any(not alias for alias in cleaned):
            raise ValueError("aliases must not be empty")
        return cleaned


class NamespaceEntry(_Strict):
    """A namespace and the services to forward from it."""

    name: str = Field(..., min_length=1, description="Namespace name")
    services: list[ServiceEntry] = Field(default_factory=list)


class ContextEntry(_Strict):
    """A kubeconfig context. An empty name means the current context."""

    name: str | None = Field(default=None, description="kubeconfig context name")
    namespaces: list[NamespaceEntry] = Field(default_factory=list)


class FwdFile(_Strict):
    """Root of the configuration file."""

    cidr: str | None = Field(
        default=None,
        description="Address range to allocate loopback aliases from",
    )
    contexts: list[ContextEntry] = Field(default_factory=list)
