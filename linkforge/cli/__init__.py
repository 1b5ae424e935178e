"""
LinkForge CLI.

Command-line interface for payload sync, link substitution and relocation.
"""

import logging

import click

from linkforge import __version__
from linkforge.core.errors import LinkForgeError
from linkforge.core.json_canonical import canonical_json_dumps


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _fail(error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    raise SystemExit(1)


def _emit(data: dict) -> None:
    click.echo(canonical_json_dumps(data, indent=True))


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Engine config YAML")
@click.option("--verbose", "-v", count=True, help="Increase log verbosity")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: int) -> None:
    """LinkForge: Reversible payload installs and directory links."""
    from linkforge.core.config import load_config

    _configure_logging(verbose)
    try:
        ctx.obj = load_config(config_path)
    except LinkForgeError as e:
        _fail(e)


@main.group()
def manifest() -> None:
    """Manifest commands."""
    pass


@manifest.command("build")
@click.argument("src", type=click.Path(exists=True, file_okay=False))
@click.option("--output", "-o", type=click.Path(), help="Write the manifest to this file")
@click.option("--format", "-f", "fmt", type=click.Choice(["table", "json"]), default="table")
@click.pass_obj
def manifest_build(config, src: str, output: str | None, fmt: str) -> None:
    """Build a manifest of SRC."""
    from pathlib import Path

    from rich.console import Console
    from rich.table import Table

    from linkforge.manifest.builder import build_manifest

    try:
        tree_manifest = build_manifest(Path(src), config)
        if output:
            tree_manifest.save(Path(output))
    except LinkForgeError as e:
        _fail(e)

    if fmt == "json":
        click.echo(canonical_json_dumps(tree_manifest.model_dump(), indent=True))
        return

    table = Table(title=f"Manifest of {src} ({tree_manifest.fingerprint})")
    table.add_column("Path", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("SHA-256", style="dim")
    for entry in tree_manifest.entries:
        table.add_row(entry.path, str(entry.size), entry.hash[:16])
    Console().print(table)


@main.group()
def sync() -> None:
    """Payload sync commands."""
    pass


@sync.command("check")
@click.argument("src", type=click.Path())
@click.argument("dest", type=click.Path())
@click.pass_obj
def sync_check(config, src: str, dest: str) -> None:
    """Report whether SRC is already applied to DEST."""
    from linkforge.sync.applier import SyncApplier

    try:
        applied = SyncApplier(config).is_applied(src, dest)
    except LinkForgeError as e:
        _fail(e)

    click.echo("applied" if applied else "not applied")
    if not applied:
        raise SystemExit(2)


@sync.command("apply")
@click.argument("src", type=click.Path())
@click.argument("dest", type=click.Path())
@click.option("--backup-dir", "-b", type=click.Path(), help="Keep originals of replaced files here")
@click.option("--journal", "-j", "journal_path", type=click.Path(), help="Record the changes made here")
@click.pass_obj
def sync_apply(
    config, src: str, dest: str, backup_dir: str | None, journal_path: str | None
) -> None:
    """Install SRC onto DEST unless already applied."""
    from pathlib import Path

    from linkforge.core.json_canonical import write_json_file
    from linkforge.sync.applier import SyncApplier

    backup_root = Path(backup_dir).absolute() if backup_dir else None
    try:
        result = SyncApplier(config).install(
            Path(src).absolute(), Path(dest).absolute(), backup_root
        )
        if journal_path and result.report is not None:
            write_json_file(Path(journal_path), result.report.journal.to_list())
    except LinkForgeError as e:
        _fail(e)

    _emit(result.to_dict())


@sync.command("rollback")
@click.argument("journal_path", metavar="JOURNAL", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def sync_rollback(config, journal_path: str) -> None:
    """Undo the changes recorded in a JOURNAL written by sync apply."""
    from linkforge.core.journal import Journal, rollback
    from linkforge.core.json_canonical import read_json_file
    from linkforge.fs.links import get_link_ops

    try:
        journal = Journal.from_list(read_json_file(journal_path))
    except LinkForgeError as e:
        _fail(e)

    result = rollback(journal, get_link_ops())
    _emit(result.to_dict())
    if not result.ok:
        raise SystemExit(1)


@main.group()
def link() -> None:
    """Directory link commands."""
    pass


@link.command("create")
@click.argument("dest", type=click.Path())
@click.argument("target", type=click.Path())
@click.pass_obj
def link_create(config, dest: str, target: str) -> None:
    """Replace DEST with a link to TARGET, backing up any directory there."""
    from linkforge.links.manager import LinkManager

    try:
        result = LinkManager(config).link(dest, target)
    except LinkForgeError as e:
        _fail(e)

    _emit(result.to_dict())


@link.command("cleanup")
@click.argument("lock", type=click.Path())
@click.pass_obj
def link_cleanup(config, lock: str) -> None:
    """Reverse everything recorded in the LOCK file."""
    from linkforge.links.manager import LinkManager

    try:
        report = LinkManager(config).cleanup(lock)
    except LinkForgeError as e:
        _fail(e)

    _emit(report.to_dict())
    if not report.ok:
        raise SystemExit(1)


@main.group()
def relocate() -> None:
    """Directory relocation commands."""
    pass


@relocate.command("move")
@click.argument("workshop_root", type=click.Path(exists=True, file_okay=False))
@click.argument("logical_id")
@click.argument("dest_dir", type=click.Path())
@click.pass_obj
def relocate_move(config, workshop_root: str, logical_id: str, dest_dir: str) -> None:
    """Move the directory for LOGICAL_ID to DEST_DIR, keeping its link stable."""
    from linkforge.links.relocation import RelocationManager

    try:
        result = RelocationManager(config).move(workshop_root, logical_id, dest_dir)
    except LinkForgeError as e:
        _fail(e)

    _emit(result.to_dict())


@relocate.command("restore")
@click.argument("workshop_root", type=click.Path(exists=True, file_okay=False))
@click.argument("logical_id")
@click.pass_obj
def relocate_restore(config, workshop_root: str, logical_id: str) -> None:
    """Move the directory for LOGICAL_ID back under WORKSHOP_ROOT."""
    from linkforge.links.relocation import RelocationManager

    try:
        result = RelocationManager(config).restore(workshop_root, logical_id)
    except LinkForgeError as e:
        _fail(e)

    _emit(result.to_dict())


@relocate.command("show")
@click.argument("logical_id", required=False)
@click.pass_obj
def relocate_show(config, logical_id: str | None) -> None:
    """Show recorded relocations."""
    from linkforge.links.relocation import RelocationManager

    manager = RelocationManager(config)
    try:
        if logical_id:
            location = manager.location_of(logical_id)
            click.echo(str(location) if location else "(not relocated)")
            return
        locations = manager.store.all()
    except LinkForgeError as e:
        _fail(e)

    if not locations:
        click.echo("No relocations recorded")
    for name, location in sorted(locations.items()):
        click.echo(f"  {name}: {location}")


if __name__ == "__main__":
    main()
