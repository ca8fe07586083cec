"""
aumai-modelsrc quickstart — working demo of resolve, plan, and PKGBUILD patching.

Run directly:

    python examples/quickstart.py

The registry is faked with an in-process transport, so no network access
is needed.  All demos use a temporary directory and clean up after themselves.
"""

from __future__ import annotations

import json
import pathlib
import tempfile

import httpx

_MANIFEST = {
    "schemaVersion": 2,
    "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
    "config": {
        "mediaType": "application/vnd.docker.container.image.v1+json",
        "digest": "sha256:" + "1" * 64,
        "size": 483,
    },
    "layers": [
        {
            "mediaType": "application/vnd.ollama.image.model",
            "digest": "sha256:" + "2" * 64,
            "size": 637699456,
        },
        {
            "mediaType": "application/vnd.ollama.image.template",
            "digest": "sha256:" + "3" * 64,
            "size": 98,
        },
    ],
}


def _fake_registry(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/manifests/latest"):
        return httpx.Response(200, json=_MANIFEST)
    return httpx.Response(404)


# ---------------------------------------------------------------------------
# Demo 1: Resolve a model into download URLs
# ---------------------------------------------------------------------------

def demo_list_sources() -> None:
    """Fetch a manifest and print the source lines a PKGBUILD would use."""
    print("\n=== Demo 1: List download URLs ===")

    from aumai_modelsrc.core import ManifestClient, resolve_sources
    from aumai_modelsrc.models import ModelReference, RegistryConfig

    reference = ModelReference.parse("tinyllama")
    print(f"  Reference : {reference}")

    config = RegistryConfig(timeout=5.0)
    with ManifestClient(config, transport=httpx.MockTransport(_fake_registry)) as client:
        entries = resolve_sources(client, reference)

    for entry in entries:
        print(f"  {entry.filename:<72}  {entry.source_line()}")


# ---------------------------------------------------------------------------
# Demo 2: Patch a PKGBUILD in place
# ---------------------------------------------------------------------------

def demo_patch_pkgbuild() -> None:
    """Rewrite the source array of a throwaway PKGBUILD twice."""
    print("\n=== Demo 2: Patch a PKGBUILD ===")

    from aumai_modelsrc.core import ManifestClient, resolve_sources, update_recipe_file
    from aumai_modelsrc.models import ModelReference

    with tempfile.TemporaryDirectory() as tmp:
        pkgbuild = pathlib.Path(tmp) / "PKGBUILD"
        pkgbuild.write_text(
            "pkgname=ollama-tinyllama\n"
            "pkgver=1.1\n"
            "source=('https://example.org/stale.bin')\n"
            "sha256sums=('SKIP')\n",
            encoding="utf-8",
        )

        with ManifestClient(transport=httpx.MockTransport(_fake_registry)) as client:
            entries = resolve_sources(client, ModelReference.parse("tinyllama:latest"))

        print(f"  First run wrote  : {update_recipe_file(pkgbuild, entries)}")
        print(f"  Second run wrote : {update_recipe_file(pkgbuild, entries)}")
        print()
        for line in pkgbuild.read_text(encoding="utf-8").splitlines():
            print(f"    {line}")


# ---------------------------------------------------------------------------
# Demo 3: Error reporting
# ---------------------------------------------------------------------------

def demo_errors() -> None:
    """Show how registry and recipe failures surface."""
    print("\n=== Demo 3: Errors ===")

    from aumai_modelsrc.core import ManifestClient, patch_source_array
    from aumai_modelsrc.errors import AnchorNotFoundError, UnexpectedStatusError

    with ManifestClient(transport=httpx.MockTransport(_fake_registry)) as client:
        try:
            client.fetch_manifest("tinyllama", "70b")
        except UnexpectedStatusError as exc:
            print(f"  UnexpectedStatusError : {exc} (status {exc.status_code})")

    try:
        patch_source_array("pkgname=foo\n", [])
    except AnchorNotFoundError as exc:
        print(f"  AnchorNotFoundError   : {exc}")

    print("\n  Raw manifest used by the fake registry:")
    print("  " + json.dumps(_MANIFEST)[:72] + "...")


if __name__ == "__main__":
    demo_list_sources()
    demo_patch_pkgbuild()
    demo_errors()
    print("\nAll demos completed.")
