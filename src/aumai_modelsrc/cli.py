"""CLI entry point for aumai-modelsrc."""

from __future__ import annotations

import logging
import sys
from typing import NoReturn

import click

from .core import ManifestClient, resolve_sources, update_recipe_file
from .errors import ModelSourceError
from .models import DEFAULT_REGISTRY, ModelReference, RegistryConfig

_DEFAULT_MODEL = "tinyllama:latest"

model_argument = click.argument("model", default=_DEFAULT_MODEL, required=False)


def _client(ctx: click.Context) -> ManifestClient:
    return ManifestClient(ctx.obj["config"], transport=ctx.obj.get("transport"))


def _fail(exc: Exception) -> NoReturn:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(package_name="aumai-modelsrc")
@click.option(
    "--registry",
    envvar="MODELSRC_REGISTRY",
    default=DEFAULT_REGISTRY,
    show_default=True,
    help="Registry base URL.",
)
@click.option(
    "--timeout",
    envvar="MODELSRC_TIMEOUT",
    type=click.FloatRange(min=0, min_open=True),
    default=30.0,
    show_default=True,
    help="Deadline in seconds for the manifest request.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def main(ctx: click.Context, registry: str, timeout: float, verbose: bool) -> None:
    """AumAI ModelSrc — PKGBUILD sources for registry-hosted models."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = RegistryConfig(base_url=registry, timeout=timeout)


@main.command("urls")
@model_argument
@click.pass_context
def urls_command(ctx: click.Context, model: str) -> None:
    """Print the download URLs for MODEL, one per line."""
    try:
        reference = ModelReference.parse(model)
        with _client(ctx) as client:
            entries = resolve_sources(client, reference)
    except ModelSourceError as exc:
        _fail(exc)

    for entry in entries:
        click.echo(entry.source_line())


@main.command("update-pkgbuild")
@model_argument
@click.option(
    "--pkgbuild",
    "pkgbuild_path",
    default="PKGBUILD",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Recipe file whose source array is rewritten.",
)
@click.pass_context
def update_pkgbuild_command(ctx: click.Context, model: str, pkgbuild_path: str) -> None:
    """Rewrite the source=(...) array of a PKGBUILD for MODEL."""
    try:
        reference = ModelReference.parse(model)
        with _client(ctx) as client:
            entries = resolve_sources(client, reference)
        written = update_recipe_file(pkgbuild_path, entries)
    except ModelSourceError as exc:
        _fail(exc)

    if written:
        click.echo(f"{pkgbuild_path} successfully updated.")
    else:
        click.echo(f"{pkgbuild_path} already up to date.")


@main.command("inspect")
@model_argument
@click.pass_context
def inspect_command(ctx: click.Context, model: str) -> None:
    """Show the manifest of MODEL without downloading anything."""
    try:
        reference = ModelReference.parse(model)
        with _client(ctx) as client:
            manifest = client.fetch_manifest(reference.repository, reference.tag)
    except ModelSourceError as exc:
        _fail(exc)

    click.echo(f"Model    : {reference}")
    click.echo(f"Schema   : {manifest.schema_version}")
    click.echo(f"Type     : {manifest.media_type or '(unspecified)'}")
    click.echo(f"Config   : {manifest.config.digest or '(none)'}")

    click.echo(f"\nLayers ({len(manifest.layers)}):")
    for layer in manifest.layers:
        size_mb = layer.size / (1024 * 1024)
        click.echo(
            f"  {layer.media_type or '(unknown)':<48}  {size_mb:10.1f} MB  "
            f"{layer.digest}"
        )


if __name__ == "__main__":
    main()
