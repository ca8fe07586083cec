"""Pydantic models for aumai-modelsrc."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import InvalidReferenceError

__all__ = [
    "DEFAULT_REGISTRY",
    "DEFAULT_TAG",
    "MANIFEST_FILENAME",
    "Layer",
    "Manifest",
    "ModelReference",
    "RegistryConfig",
    "SourceEntry",
    "parse_model_path",
]

DEFAULT_REGISTRY = "https://registry.ollama.ai"
DEFAULT_TAG = "latest"
MANIFEST_FILENAME = "manifest.json"

_DEFAULT_ACCEPT = [
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
]


def parse_model_path(name: str) -> tuple[str, str]:
    """Split ``repository[:tag]`` at the first colon; the tag defaults to ``latest``."""
    repository, sep, tag = name.partition(":")
    if not sep:
        tag = DEFAULT_TAG
    return repository, tag


class Layer(BaseModel):
    """A content-addressed blob referenced by a manifest."""

    model_config = ConfigDict(populate_by_name=True)

    digest: str = ""       # sha256:<hex>, empty when absent
    size: int = Field(default=0, ge=0)
    media_type: str = Field(default="", alias="mediaType")


class Manifest(BaseModel):
    """
    Registry manifest as served by ``/v2/library/<repo>/manifests/<tag>``.

    Unknown keys are ignored.  A missing config digest is legal and means
    the manifest has no config layer.
    """

    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(default=0, alias="schemaVersion")
    media_type: str = Field(default="", alias="mediaType")
    config: Layer = Field(default_factory=Layer)
    layers: list[Layer] = Field(default_factory=list)

    @field_validator("config", mode="before")
    @classmethod
    def _null_config(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("layers", mode="before")
    @classmethod
    def _null_layers(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def has_config(self) -> bool:
        return bool(self.config.digest)


class ModelReference(BaseModel):
    """A ``repository:tag`` pair naming a model in the registry."""

    model_config = ConfigDict(frozen=True)

    repository: str
    tag: str = DEFAULT_TAG

    @classmethod
    def parse(cls, name: str) -> ModelReference:
        """Parse *name*, rejecting references with an empty repository."""
        repository, tag = parse_model_path(name)
        if not repository:
            raise InvalidReferenceError(
                f"invalid model reference {name!r}: repository is empty"
            )
        return cls(repository=repository, tag=tag)

    def __str__(self) -> str:
        return f"{self.repository}:{self.tag}"


class SourceEntry(BaseModel):
    """One downloadable artifact: a local filename and the URL it comes from."""

    model_config = ConfigDict(frozen=True)

    filename: str
    url: str

    @property
    def is_manifest(self) -> bool:
        return self.filename == MANIFEST_FILENAME

    def source_line(self) -> str:
        """
        Render the entry the way a PKGBUILD ``source`` array lists it.

        The manifest keeps an explicit ``name::url`` rename; blob entries
        are the bare URL.
        """
        if self.is_manifest:
            return f"{self.filename}::{self.url}"
        return self.url


class RegistryConfig(BaseModel):
    """Connection settings for the model registry."""

    base_url: str = DEFAULT_REGISTRY
    timeout: float = Field(default=30.0, gt=0)   # seconds, whole request
    accept: list[str] = Field(default_factory=lambda: list(_DEFAULT_ACCEPT))
