"""Shared test fixtures for aumai-modelsrc."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from aumai_modelsrc.core import ManifestClient
from aumai_modelsrc.models import RegistryConfig

BASE_URL = "https://reg.example/"
CONFIG_DIGEST = "sha256:" + "a" * 64
MODEL_DIGEST = "sha256:" + "b" * 64
LICENSE_DIGEST = "sha256:" + "c" * 64


# ---------------------------------------------------------------------------
# Manifest documents
# ---------------------------------------------------------------------------


@pytest.fixture()
def manifest_doc() -> dict[str, Any]:
    """A manifest shaped like the ones registry.ollama.ai serves."""
    return {
        "schemaVersion": 2,
        "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
        "config": {
            "mediaType": "application/vnd.docker.container.image.v1+json",
            "digest": CONFIG_DIGEST,
            "size": 483,
        },
        "layers": [
            {
                "mediaType": "application/vnd.ollama.image.model",
                "digest": MODEL_DIGEST,
                "size": 637699456,
            },
            {
                "mediaType": "application/vnd.ollama.image.license",
                "digest": LICENSE_DIGEST,
                "size": 1120,
            },
        ],
    }


# ---------------------------------------------------------------------------
# Fake registry
# ---------------------------------------------------------------------------


class FakeRegistry:
    """Records requests and answers every GET with a canned response."""

    def __init__(self, status_code: int = 200, body: bytes = b"{}") -> None:
        self.status_code = status_code
        self.body = body
        self.requests: list[httpx.Request] = []
        self.error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, content=self.body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture()
def registry(manifest_doc: dict[str, Any]) -> FakeRegistry:
    return FakeRegistry(body=json.dumps(manifest_doc).encode("utf-8"))


@pytest.fixture()
def make_client() -> Callable[[FakeRegistry], ManifestClient]:
    def _make(fake: FakeRegistry, **config: Any) -> ManifestClient:
        config.setdefault("base_url", BASE_URL)
        return ManifestClient(RegistryConfig(**config), transport=fake.transport)

    return _make


# ---------------------------------------------------------------------------
# Recipe files
# ---------------------------------------------------------------------------


PKGBUILD_TEXT = """\
# Maintainer: Someone <someone@example.org>
pkgname=ollama-tinyllama
pkgver=1.1
pkgrel=1
arch=('any')
source=(
    'https://registry.ollama.ai/v2/library/tinyllama/blobs/sha256:old'
    'tinyllama-latest.manifest.json::https://registry.ollama.ai/v2/library/tinyllama/manifests/latest'
)
sha256sums=('SKIP'
            'SKIP')

package() {
    install -d "$pkgdir/usr/share/ollama"
}
"""


@pytest.fixture()
def pkgbuild_text() -> str:
    return PKGBUILD_TEXT


@pytest.fixture()
def pkgbuild(tmp_path: Path) -> Path:
    path = tmp_path / "PKGBUILD"
    path.write_text(PKGBUILD_TEXT, encoding="utf-8")
    return path
