"""
Lumina CLI
Command-line interface for batch photo editing.
"""

import asyncio
import json
import logging
from pathlib import Path

import click

from .presets import FILTERS, FilterType, PresetNotFoundError


def adjustment_options(func):
    """Shared options describing an AdjustmentSet edit."""
    options = [
        click.option("--preset", help="Preset id or name to start from"),
        click.option(
            "--filter", "filter_name",
            type=click.Choice([f.value for f in FilterType]),
            help="Quick filter to apply",
        ),
        click.option("--brightness", type=float, help="Brightness % (0-200)"),
        click.option("--contrast", type=float, help="Contrast % (0-200)"),
        click.option("--saturation", type=float, help="Saturation % (0-200)"),
        click.option("--blur", type=float, help="Blur radius in px (0-10)"),
        click.option("--sepia", type=float, help="Sepia % (0-100)"),
        click.option("--grayscale", type=float, help="Grayscale % (0-100)"),
        click.option("--warmth", type=float, help="Warmth (0-100)"),
        click.option("--watermark", help="Text watermark"),
        click.option("--overlay", type=click.Path(exists=True, dir_okay=False), help="Overlay image file"),
        click.option("--overlay-x", type=float, help="Overlay center x (0-1)"),
        click.option("--overlay-y", type=float, help="Overlay center y (0-1)"),
        click.option("--overlay-scale", type=float, help="Overlay width as fraction of frame"),
        click.option("--overlay-opacity", type=float, help="Overlay opacity (0-1)"),
        click.option("--privacy/--no-privacy", default=None, help="Redact faces and plates"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _apply_edits(session, preset, filter_name, overlay, **fields):
    """
    Build the AdjustmentSet from preset, filter and field overrides.

    The result replaces the adjustments of every selected image.
    """
    adjustments = session.workspace.current_adjustments
    if preset:
        try:
            adjustments = session.presets.get(preset).adjustments
        except PresetNotFoundError:
            raise click.BadParameter(f"Unknown preset: {preset}", param_hint="--preset")

    changes = dict(FILTERS[FilterType(filter_name)]) if filter_name else {}
    changes.update({name: value for name, value in fields.items() if value is not None})
    if "privacy" in changes:
        changes["privacy_blur"] = changes.pop("privacy")
    if overlay:
        changes["overlay_image"] = Path(overlay).read_bytes()

    adjustments = adjustments.replace(**changes)
    session.workspace.update_adjustments(adjustments)
    return adjustments


def _print_status(message: str) -> None:
    click.echo(f"ℹ️  {message}")


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs")
def cli(verbose: bool):
    """Lumina - batch photo editing with AI assistance"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", default=".", type=click.Path(file_okay=False), help="Output directory")
@adjustment_options
def export(paths, output, preset, filter_name, overlay, **fields):
    """Edit images and export them (one file, or a ZIP for several)."""
    from .session import build_session

    session = build_session(on_status=_print_status)
    workspace = session.workspace
    workspace.add_paths(paths)
    workspace.select_all()
    _apply_edits(session, preset, filter_name, overlay, **fields)

    def progress(index, total, name):
        click.echo(f"Processing {index}/{total}: {name}")

    async def run():
        try:
            if any(item.needs_detection for item in workspace.selected):
                if session.breaker.is_open():
                    click.echo(f"⏸️  {session.breaker.wait_message()}")
                else:
                    click.echo("🔍 Detecting faces and plates...")
                    report = await session.scheduler.run()
                    if report.failed:
                        click.echo(f"⚠️  Detection failed for {len(report.failed)} images, exporting unredacted")
            return await session.exporter.export(workspace.selected, progress=progress)
        finally:
            await session.aclose()

    from .exporter import BatchExportError

    try:
        artifact = asyncio.run(run())
    except BatchExportError as e:
        click.echo(f"❌ {e}")
        raise SystemExit(1)

    target = artifact.save(Path(output))
    click.echo(f"✅ Saved {target} ({len(artifact.entries)} images)")


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
def detect(paths):
    """Detect privacy regions (faces, plates) and print them as JSON."""
    from .session import build_session

    session = build_session(on_status=_print_status)
    workspace = session.workspace
    workspace.add_paths(paths)
    workspace.select_all()
    workspace.edit(privacy_blur=True)

    async def run():
        try:
            return await session.scheduler.run()
        finally:
            await session.aclose()

    report = asyncio.run(run())

    result = {}
    for item in workspace.images.values():
        if item.regions is None:
            result[item.name] = None
        else:
            result[item.name] = [r.model_dump() for r in item.regions]
    click.echo(json.dumps(result, indent=2))

    if report.quota_exhausted:
        click.echo("⚠️  Quota exhausted before every image was scanned")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def enhance(path):
    """Ask the AI for tone adjustments for one image."""
    from .session import build_session

    session = build_session()
    session.workspace.add_paths([path])

    async def run():
        try:
            return await session.assistant.auto_enhance()
        finally:
            await session.aclose()

    click.echo(asyncio.run(run()))
    adjustments = session.workspace.current_adjustments
    click.echo(json.dumps(adjustments.model_dump(include={"brightness", "contrast", "saturation", "warmth"}), indent=2))


@cli.command("remove-bg")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", required=True, type=click.Path(dir_okay=False), help="PNG output file")
def remove_bg(path, output):
    """Cut out the main subject of an overlay/logo image."""
    from .session import build_session

    session = build_session()
    workspace = session.workspace
    workspace.add_paths([path])
    original = Path(path).read_bytes()
    workspace.edit(overlay_image=original)

    async def run():
        try:
            return await session.assistant.remove_background()
        finally:
            await session.aclose()

    click.echo(asyncio.run(run()))
    cutout = workspace.current_adjustments.overlay_image
    if cutout and cutout != original:
        Path(output).write_bytes(cutout)
        click.echo(f"✅ Saved {output}")


# =============================================================================
# Preset Commands
# =============================================================================

@cli.group()
def presets():
    """Manage saved adjustment presets."""
    pass


@presets.command("list")
def presets_list():
    """List saved presets."""
    from .presets import PresetStore

    store = PresetStore()
    for preset in store.list():
        overlay = " +overlay" if preset.adjustments.has_overlay else ""
        click.echo(f"{preset.id[:8]}  {preset.name}{overlay}")


@presets.command("show")
@click.argument("key")
def presets_show(key):
    """Print a preset's adjustments."""
    from .presets import PresetStore

    try:
        preset = PresetStore().get(key)
    except PresetNotFoundError:
        raise click.ClickException(f"Unknown preset: {key}")
    click.echo(json.dumps(preset.adjustments.model_dump(exclude={"overlay_image"}), indent=2))


@presets.command("save")
@click.argument("name")
@adjustment_options
def presets_save(name, preset, filter_name, overlay, **fields):
    """Save adjustments as a named preset."""
    from .session import build_session

    session = build_session()
    adjustments = _apply_edits(session, preset, filter_name, overlay, **fields)
    saved = session.presets.save(name, adjustments)
    click.echo(f"✅ Saved preset '{saved.name}' ({saved.id[:8]})")


@presets.command("delete")
@click.argument("key")
def presets_delete(key):
    """Delete a preset by id or name."""
    from .presets import PresetStore

    try:
        PresetStore().delete(key)
    except PresetNotFoundError:
        raise click.ClickException(f"Unknown preset: {key}")
    click.echo(f"🗑️  Deleted preset {key}")


if __name__ == "__main__":
    cli()
