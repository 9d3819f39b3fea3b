"""Sideport CLI - offline tools around the bridge.

Usage:
    sideport encode project.json --url myExt=https://...   - Disguise sideloaded blocks for saving
    sideport decode project.json                           - Restore sideloaded blocks
    sideport inspect my_extension.py                       - Run an extension script and show its metadata
    sideport settings --show                               - Show or change bridge settings
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
import httpx

from sideport.capabilities.network import NetworkFetchCapability
from sideport.config import get_config
from sideport.core.errors import SideportError, format_exception_chain
from sideport.core.logging import setup_logging
from sideport.core.settings import MIXIN_NAMES, BridgeSettings, SettingsManager
from sideport.extensions.loader import SideloadLoader
from sideport.models.context import BridgeContext
from sideport.models.extension import BlockEntry
from sideport.patches.engine import is_url
from sideport.project.codec import ProjectCodec
from sideport.vm.sandbox import Sandbox


def _fail(error: Exception) -> None:
    click.echo(format_exception_chain(error), err=True)
    sys.exit(1)


def _read_json(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise SideportError(f"Not a JSON project: {path}", details=e.msg, cause=e) from e


def _write_json(data: dict, output: Optional[Path]) -> None:
    text = json.dumps(data, ensure_ascii=False, indent=2)
    if output:
        output.write_text(text, encoding="utf-8")
        click.echo(f"Wrote {output}", err=True)
    else:
        click.echo(text)


@click.group()
@click.version_option(version="0.1.0", prog_name="Sideport")
def cli():
    """Sideport - sideload extensions into a host engine.

    These commands work on saved project files and extension scripts
    without a running host.
    """
    config = get_config()
    setup_logging(
        level=config.log.level,
        format_type=config.log.format,
        log_dir=config.log.log_dir,
        file_enabled=config.log.file_enabled,
        console_enabled=config.log.console_enabled
    )


@cli.command()
@click.argument("project", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--url", "-u", "urls", multiple=True, help="Sideloaded extension as ID=URL")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write here instead of stdout")
def encode(project: Path, urls: tuple[str, ...], output: Optional[Path]):
    """Disguise sideloaded blocks of PROJECT so the host can save it.

    Example:
        sideport encode project.json -u myExt=https://example.com/ext.py
    """
    table = {}
    for entry in urls:
        extension_id, sep, url = entry.partition("=")
        if not sep or not extension_id or not url:
            raise click.BadParameter(f"Expected ID=URL, got {entry!r}", param_hint="--url")
        table[extension_id] = url

    try:
        codec = ProjectCodec(BridgeContext(), lambda: table)
        _write_json(codec.encode(_read_json(project)), output)
    except SideportError as e:
        _fail(e)


@cli.command()
@click.argument("project", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write here instead of stdout")
def decode(project: Path, output: Optional[Path]):
    """Restore the sideloaded blocks of a saved PROJECT."""
    ctx = BridgeContext()
    try:
        decoded = ProjectCodec(ctx, dict).decode(_read_json(project))
    except SideportError as e:
        _fail(e)
        return

    for extension_id, url in ctx.id_to_url.items():
        click.echo(f"sideloaded: {extension_id} -> {url}", err=True)
    _write_json(decoded, output)


async def _fetch_source(script: str, timeout: float) -> str:
    response = await NetworkFetchCapability(timeout=timeout).fetch(script)
    response.raise_for_status()
    return response.text


@cli.command()
@click.argument("script")
@click.option("--restricted", is_flag=True, help="Run under RestrictedPython")
@click.option("--json", "as_json", is_flag=True, help="Print the metadata as JSON")
def inspect(script: str, restricted: bool, as_json: bool):
    """Run extension SCRIPT (path or URL) and show what it registers."""
    try:
        if is_url(script):
            source = asyncio.run(_fetch_source(script, get_config().loader.fetch_timeout))
        else:
            source = Path(script).read_text(encoding="utf-8")
    except (OSError, httpx.HTTPError, PermissionError) as e:
        _fail(e)
        return

    loader = SideloadLoader(BridgeContext(), sandbox=Sandbox(unrestricted=not restricted))
    try:
        metadata = loader.inspect_source(source, url=script)
    except SideportError as e:
        _fail(e)
        return

    if as_json:
        click.echo(json.dumps(metadata.model_dump(mode="json"), ensure_ascii=False, indent=2))
        return

    click.echo(f"Extension: {metadata.id} ({metadata.name})")
    click.echo(f"Blocks: {len(metadata.opcodes)}")
    for block in metadata.blocks:
        if isinstance(block, BlockEntry):
            label = block.opcode or block.func or ""
            click.echo(f"  [{block.block_type.value}] {label}: {block.text}")
        else:
            click.echo("  ---")
    if metadata.menus:
        click.echo(f"Menus: {', '.join(metadata.menus)}")


@cli.command()
@click.option("--show", is_flag=True, help="Show current settings")
@click.option("--headless/--no-headless", default=None, help="Capture only, install no patches")
@click.option("--expose/--no-expose", default=None, help="Publish the bridge as a page global")
@click.option("--restricted/--unrestricted", default=None, help="Run sideloaded code under RestrictedPython")
@click.option("--enable", "enable", multiple=True, type=click.Choice(MIXIN_NAMES), help="Enable a patch")
@click.option("--disable", "disable", multiple=True, type=click.Choice(MIXIN_NAMES), help="Disable a patch")
@click.option("--reset", is_flag=True, help="Restore defaults")
def settings(show, headless, expose, restricted, enable, disable, reset):
    """Show or change bridge settings."""
    manager = SettingsManager(get_config().paths.settings_path)

    if reset:
        manager.save(BridgeSettings())
        click.echo("Settings reset to defaults.")
        return

    if show:
        click.echo(f"Settings Path: {manager.settings_path}")
        click.echo(manager.settings.model_dump_json(indent=2))
        return

    current = manager.settings
    behavior = current.behavior.model_dump()
    if headless is not None:
        behavior["headless"] = headless
    if expose is not None:
        behavior["expose_context"] = expose
    if restricted is not None:
        behavior["restricted_sideload"] = restricted

    mixins = dict(current.mixins)
    for name in enable:
        mixins[name] = True
    for name in disable:
        mixins[name] = False

    if behavior == current.behavior.model_dump() and mixins == current.mixins:
        click.echo("No changes specified.")
        return

    try:
        manager.update(behavior=behavior, mixins=mixins)
    except SideportError as e:
        _fail(e)
        return
    click.echo("Settings updated.")


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
