"""Core logic for aumai-modelsrc."""

from __future__ import annotations

import logging
import posixpath
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Iterable, Sequence
from urllib.parse import urljoin

import httpx
from pydantic import ValidationError

from .errors import (
    AnchorNotFoundError,
    DecodeError,
    RecipeIOError,
    TransportError,
    UnexpectedStatusError,
)
from .models import (
    MANIFEST_FILENAME,
    Manifest,
    ModelReference,
    RegistryConfig,
    SourceEntry,
)

__all__ = [
    "ManifestClient",
    "SOURCE_KEY",
    "digest_to_filename",
    "find_array_span",
    "patch_source_array",
    "plan_sources",
    "render_source_array",
    "resolve_blob_url",
    "resolve_manifest_url",
    "resolve_sources",
    "update_recipe_file",
]

logger = logging.getLogger(__name__)

SOURCE_KEY = "source"
_INDENT = "    "


# ------------------------------------------------------------------
# Digests and URLs
# ------------------------------------------------------------------


def digest_to_filename(digest: str) -> str:
    """Return *digest* with every ``:`` replaced by ``-``."""
    return digest.replace(":", "-")


def _registry_url(base_url: str, *segments: str) -> str:
    # urljoin leaves the digest's ':' unescaped, normpath collapses '//'
    path = posixpath.normpath("/".join(("v2", "library") + segments))
    return urljoin(base_url, path)


def resolve_manifest_url(base_url: str, repository: str, tag: str) -> str:
    """URL of ``<base>/v2/library/<repository>/manifests/<tag>``."""
    return _registry_url(base_url, repository, "manifests", tag)


def resolve_blob_url(base_url: str, repository: str, digest: str) -> str:
    """URL of ``<base>/v2/library/<repository>/blobs/<digest>``."""
    return _registry_url(base_url, repository, "blobs", digest)


# ------------------------------------------------------------------
# Registry access
# ------------------------------------------------------------------


class ManifestClient:
    """
    Fetches model manifests from a registry.

    One GET per call, no retries.  The whole exchange, connection setup
    included, must finish within ``config.timeout`` seconds.
    """

    def __init__(
        self,
        config: RegistryConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config or RegistryConfig()
        self._http = httpx.Client(
            transport=transport,
            headers={"Accept": ", ".join(self.config.accept)},
            follow_redirects=True,
        )

    def __enter__(self) -> ManifestClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def fetch_manifest(self, repository: str, tag: str) -> Manifest:
        """
        Retrieve and decode the manifest for ``repository:tag``.

        Raises ``TransportError`` on connection failures and timeouts,
        ``UnexpectedStatusError`` for any non-200 answer (the body is not
        read), and ``DecodeError`` when the body is not a manifest.
        """
        url = resolve_manifest_url(self.config.base_url, repository, tag)
        timeout = self.config.timeout
        logger.debug("Fetching manifest from %s", url)

        deadline = time.monotonic() + timeout
        abandoned = threading.Event()
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="manifest-fetch")
        try:
            future = pool.submit(self._read_manifest, url, deadline, abandoned)
            body = future.result(timeout=max(deadline - time.monotonic(), 0.0))
        except (FutureTimeoutError, httpx.TimeoutException) as exc:
            abandoned.set()
            logger.warning("Manifest request to %s timed out after %gs", url, timeout)
            raise TransportError(
                f"request to {url} timed out after {timeout:g}s", url, timed_out=True
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Manifest request to %s failed: %s", url, exc)
            raise TransportError(f"request to {url} failed: {exc}", url) from exc
        finally:
            pool.shutdown(wait=False)

        try:
            manifest = Manifest.model_validate_json(body)
        except ValidationError as exc:
            first = exc.errors()[0]
            raise DecodeError(
                f"failed to decode manifest from {url}: {first['msg']}"
            ) from exc

        logger.debug(
            "Manifest %s:%s has %d layer(s), config %s",
            repository,
            tag,
            len(manifest.layers),
            manifest.config.digest or "(none)",
        )
        return manifest

    def _read_manifest(
        self, url: str, deadline: float, abandoned: threading.Event
    ) -> bytes:
        # Runs on the fetch worker; each httpx phase is capped at what is left.
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise httpx.ConnectTimeout("deadline exceeded before connecting")

        body = bytearray()
        with self._http.stream("GET", url, timeout=httpx.Timeout(remaining)) as response:
            if response.status_code != httpx.codes.OK:
                status_text = f"{response.status_code} {response.reason_phrase}".strip()
                logger.warning("Registry answered %s for %s", status_text, url)
                raise UnexpectedStatusError(url, response.status_code, status_text)
            for chunk in response.iter_bytes():
                if abandoned.is_set() or time.monotonic() > deadline:
                    raise httpx.ReadTimeout("deadline exceeded while reading body")
                body.extend(chunk)
        return bytes(body)


# ------------------------------------------------------------------
# Planning
# ------------------------------------------------------------------


def plan_sources(
    manifest: Manifest, base_url: str, repository: str, tag: str
) -> list[SourceEntry]:
    """
    Expand *manifest* into the ordered list of files to download.

    Order is config blob (when present), layers as declared, and the
    manifest itself last under ``manifest.json``.
    """
    digests: list[str] = []
    if manifest.has_config:
        digests.append(manifest.config.digest)
    digests.extend(layer.digest for layer in manifest.layers)

    entries = [
        SourceEntry(
            filename=digest_to_filename(digest),
            url=resolve_blob_url(base_url, repository, digest),
        )
        for digest in digests
    ]
    entries.append(
        SourceEntry(
            filename=MANIFEST_FILENAME,
            url=resolve_manifest_url(base_url, repository, tag),
        )
    )
    return entries


def resolve_sources(
    client: ManifestClient, reference: ModelReference
) -> list[SourceEntry]:
    """Fetch the manifest for *reference* and plan its sources."""
    manifest = client.fetch_manifest(reference.repository, reference.tag)
    entries = plan_sources(
        manifest, client.config.base_url, reference.repository, reference.tag
    )
    logger.debug("Planned %d source(s) for %s", len(entries), reference)
    return entries


# ------------------------------------------------------------------
# Recipe patching
# ------------------------------------------------------------------


def _find_assignment(text: str, marker: str) -> int:
    """Index of the first *marker* that starts a shell command, or -1."""
    command_start = True
    quote = ""
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if quote:
            if ch == "\\" and quote == '"':
                i += 2
                continue
            if ch == quote:
                quote = ""
            i += 1
            continue
        if command_start and text.startswith(marker, i):
            return i
        if ch in "'\"":
            quote = ch
        elif ch == "\\":
            i += 2
            command_start = False
            continue
        elif ch == "#" and (i == 0 or text[i - 1] in " \t\r\n;"):
            newline = text.find("\n", i)
            if newline == -1:
                return -1
            i = newline
            continue

        if ch in "\n;":
            command_start = True
        elif ch not in " \t\r":
            command_start = False
        i += 1
    return -1


def find_array_span(text: str, key: str = SOURCE_KEY) -> tuple[int, int]:
    """
    Locate the ``key=( ... )`` array in *text*.

    Only an assignment at the start of a command counts: a line start
    after optional indentation, or after ``;``.  Matches inside comments
    and quoted strings are ignored.

    Returns the indices of the opening and the matching closing
    parenthesis.  Quotes, escapes, comments and nested parentheses inside
    the array are skipped over when looking for the close.
    """
    marker = f"{key}=("
    start = _find_assignment(text, marker)
    if start == -1:
        raise AnchorNotFoundError(key)

    open_idx = start + len(marker) - 1
    depth = 0
    quote = ""
    i = open_idx
    n = len(text)
    while i < n:
        ch = text[i]
        if quote:
            if ch == "\\" and quote == '"':
                i += 2
                continue
            if ch == quote:
                quote = ""
        elif ch in "'\"":
            quote = ch
        elif ch == "\\":
            i += 2
            continue
        elif ch == "#" and text[i - 1] in " \t\r\n(":
            newline = text.find("\n", i)
            if newline == -1:
                break
            i = newline
            continue
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return open_idx, i
        i += 1

    raise AnchorNotFoundError(key, "is not terminated")


def _quote(value: str) -> str:
    return "'" + value.replace("'", "'\\''") + "'"


def render_source_array(entries: Iterable[SourceEntry], newline: str = "\n") -> str:
    """Render *entries* as a parenthesised array, one quoted line per entry."""
    lines = [f"{newline}{_INDENT}{_quote(entry.source_line())}" for entry in entries]
    if not lines:
        return "()"
    return "(" + "".join(lines) + newline + ")"


def patch_source_array(
    text: str, entries: Sequence[SourceEntry], key: str = SOURCE_KEY
) -> str:
    """Replace the body of the ``key=(...)`` array, keeping all other text."""
    open_idx, close_idx = find_array_span(text, key)
    newline = "\r\n" if "\r\n" in text else "\n"
    return text[:open_idx] + render_source_array(entries, newline) + text[close_idx + 1:]


def update_recipe_file(
    path: str | Path, entries: Sequence[SourceEntry], key: str = SOURCE_KEY
) -> bool:
    """
    Rewrite the ``key`` array of the recipe at *path* in place.

    Returns ``True`` when the file was written, ``False`` when it already
    listed exactly *entries*.
    """
    recipe = Path(path)
    try:
        with recipe.open(
            "r", encoding="utf-8", errors="surrogateescape", newline=""
        ) as fh:
            original = fh.read()
    except OSError as exc:
        raise RecipeIOError(str(recipe), "read", str(exc)) from exc

    updated = patch_source_array(original, entries, key)
    if updated == original:
        logger.info("%s already lists %d source(s)", recipe, len(entries))
        return False

    try:
        with recipe.open(
            "w", encoding="utf-8", errors="surrogateescape", newline=""
        ) as fh:
            fh.write(updated)
    except OSError as exc:
        raise RecipeIOError(str(recipe), "write", str(exc)) from exc

    logger.info("Rewrote %s=(...) in %s with %d source(s)", key, recipe, len(entries))
    return True
