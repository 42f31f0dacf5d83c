"""ktree CLI: knowledge entries stored as JSON files, linked into a graph.

Commands:
    ktree init [NAME]                  create ktree.toml + entries dir
    ktree add PATH FILE                create an entry from a JSON document
    ktree show PATH [--depth N]        print an entry with linked entries embedded
    ktree update PATH FILE [--new-path P]
    ktree mv OLD NEW                   move/rename, rewriting incoming references
    ktree rm PATH [--keep-links]       delete, stripping incoming references
    ktree link FROM TO KIND [-d TEXT]  add one relation (mirrored for symmetric kinds)
    ktree ls                           table of all entries
    ktree validate [PATH] [--fix]      report broken links / missing mirrors
    ktree recent [--days N] [--type T]  entries added or modified lately
    ktree stats [--include S]          counts and breakdowns
    ktree kinds                        list relationship kinds
"""

from __future__ import annotations

import contextlib
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from ktree.config import KtreeConfig, init_config, load_config
from ktree.engine import KnowledgeTree
from ktree.errors import KtreeError
from ktree.models import priority_order
from ktree.notify import LogSink
from ktree.relationships import DESCRIPTIONS, RELATIONSHIP_KINDS, is_symmetric
from ktree.summary import CHANGE_TYPES, DEFAULT_STATS_SECTIONS, STATS_SECTIONS

if TYPE_CHECKING:
    from collections.abc import Iterator

    from ktree.results import OperationResult

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg() -> KtreeConfig:
    try:
        return load_config()
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


def _tree(cfg: KtreeConfig | None = None) -> KnowledgeTree:
    cfg = cfg or _load_cfg()
    cfg.ensure_dirs()
    return KnowledgeTree.from_config(cfg, sink=LogSink())


@contextlib.contextmanager
def _engine_errors() -> Iterator[None]:
    try:
        yield
    except KtreeError as exc:
        raise click.ClickException(exc.message) from exc


def _read_document(source: Any) -> dict[str, Any]:
    name = getattr(source, "name", None) or "<stdin>"
    try:
        data = json.load(source)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Invalid JSON in {name}: {exc.msg} (line {exc.lineno})") from exc
    if not isinstance(data, dict):
        raise click.ClickException(f"{name}: expected a JSON object")
    return data


def _echo_result(verb: str, result: OperationResult) -> None:
    if result.moved:
        click.echo(f"{verb} {result.old_path} -> {result.path}")
    else:
        click.echo(f"{verb} {result.path}")
    if result.modified:
        click.echo(f"  updated references in {result.modified} other entr{'y' if result.modified == 1 else 'ies'}")
    for warning in result.warnings:
        click.secho(f"  warning: {warning}", fg="yellow", err=True)
    for failure in result.side_effects.messages():
        click.secho(f"  incomplete: {failure}", fg="yellow", err=True)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="ktree")
@click.option("-v", "--verbose", is_flag=True, help="Log engine activity to stderr")
def cli(verbose: bool) -> None:
    """ktree — knowledge entries linked into a graph."""
    if verbose:
        level = logging.INFO
    else:
        try:
            level = load_config().log.level_no
        except Exception:
            level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(message)s")


# ---------------------------------------------------------------------------
# ktree init
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
def init(name: str | None, root: str) -> None:
    """Create ktree.toml and the entries directory."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, name=name)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("ktree.toml already exists — skipping init")

    cfg = load_config(root_path)
    cfg.ensure_dirs()
    click.echo(f"Entries dir : {cfg.entries_dir}")


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path")
@click.argument("document", type=click.File("r"))
def add(path: str, document: Any) -> None:
    """Create the entry PATH from a JSON DOCUMENT ('-' for stdin)."""
    data = _read_document(document)
    with _engine_errors():
        result = _tree().create(path, data)
    _echo_result("Created", result)


@cli.command()
@click.argument("path")
@click.argument("patch", type=click.File("r"))
@click.option("--new-path", default=None, help="Also move the entry to this path")
def update(path: str, patch: Any, new_path: str | None) -> None:
    """Apply the JSON object PATCH to the entry PATH (null clears a field)."""
    data = _read_document(patch)
    with _engine_errors():
        result = _tree().update(path, data, new_path=new_path)
    _echo_result("Updated", result)


@cli.command()
@click.argument("old")
@click.argument("new")
def mv(old: str, new: str) -> None:
    """Move entry OLD to NEW and retarget every reference to it."""
    with _engine_errors():
        result = _tree().move(old, new)
    _echo_result("Moved", result)


@cli.command()
@click.argument("path")
@click.option("--keep-links", is_flag=True, help="Leave relations pointing at PATH in other entries")
def rm(path: str, keep_links: bool) -> None:
    """Delete the entry PATH."""
    with _engine_errors():
        result = _tree().delete(path, cleanup_links=not keep_links)
    _echo_result("Deleted", result)


@cli.command()
@click.argument("source")
@click.argument("target")
@click.argument("kind", type=click.Choice(RELATIONSHIP_KINDS))
@click.option("-d", "--description", default=None, help="Why the entries are related")
def link(source: str, target: str, kind: str, description: str | None) -> None:
    """Relate SOURCE to TARGET with relationship KIND."""
    with _engine_errors():
        result = _tree().link(source, target, kind, description)
    click.echo(f"Linked {result.path} {kind} {target}")
    for failure in result.side_effects.messages():
        click.secho(f"  incomplete: {failure}", fg="yellow", err=True)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path")
@click.option("--depth", type=click.IntRange(min=1), default=None, help="Hops of linked entries to embed")
def show(path: str, depth: int | None) -> None:
    """Print the entry PATH as JSON, with linked entries embedded."""
    with _engine_errors():
        data = _tree().read_with_depth(path, depth)
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


@cli.command(name="ls")
def list_entries() -> None:
    """List all entries."""
    from rich.console import Console
    from rich.table import Table

    cfg = _load_cfg()
    tree = _tree(cfg)
    rows = sorted(tree.store.iter_entries(), key=lambda kv: (priority_order(kv[1].priority), kv[0]))

    table = Table(title=f"ktree — {cfg.name}", show_header=True, header_style="bold")
    table.add_column("Path", no_wrap=True)
    table.add_column("Priority")
    table.add_column("Title")
    table.add_column("Links", justify="right")
    for key, entry in rows:
        table.add_row(key, entry.priority, entry.title or "", str(len(entry.related_to)))
    Console().print(table)
    click.echo(f"{len(rows)} entries")


@cli.command()
@click.argument("path", required=False)
@click.option("--fix", is_flag=True, help="Add missing mirrors of symmetric relations")
def validate(path: str | None, fix: bool) -> None:
    """Check entries for invalid fields, broken links and missing mirrors."""
    with _engine_errors():
        report = _tree().validate(path, fix=fix)
    click.echo(f"Checked {report.checked} entries")
    if report.fixed:
        click.echo(f"Fixed {report.fixed} missing mirror link(s)")
    if report.ok:
        click.echo("All entries are valid")
        return
    click.echo(f"Found {len(report.issues)} issue(s):")
    for issue in report.issues:
        click.echo(f"  - {issue}")
    raise SystemExit(1)


@cli.command()
def kinds() -> None:
    """List relationship kinds."""
    from rich.console import Console
    from rich.table import Table

    table = Table(show_header=True, header_style="bold")
    table.add_column("Kind", no_wrap=True)
    table.add_column("Mirrored")
    table.add_column("Meaning")
    for kind in RELATIONSHIP_KINDS:
        table.add_row(kind, "yes" if is_symmetric(kind) else "", DESCRIPTIONS[kind])
    Console().print(table)


@cli.command()
@click.option("--days", type=click.IntRange(min=0), default=7, show_default=True, help="Look-back window")
@click.option("--limit", type=click.IntRange(min=1), default=20, show_default=True)
@click.option("--type", "change", type=click.Choice(CHANGE_TYPES), default="all", show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Print the raw report")
def recent(days: int, limit: int, change: str, as_json: bool) -> None:
    """Entries added or modified in the last DAYS days."""
    report = _tree().recent(days=days, limit=limit, change=change)
    if as_json:
        click.echo(json.dumps(report, indent=2, ensure_ascii=False))
        return

    from rich.console import Console
    from rich.table import Table

    s = report["summary"]
    table = Table(title=f"Last {days} day(s): {s['added']} added, {s['modified']} modified", header_style="bold")
    table.add_column("Path", no_wrap=True)
    table.add_column("Change")
    table.add_column("Priority")
    table.add_column("Modified")
    for item in report["entries"]:
        table.add_row(item["path"], item["change_type"], item["priority"], item["modified_at"][:19])
    Console().print(table)
    if s["showing"] < s["total_changes"]:
        click.echo(f"showing {s['showing']} of {s['total_changes']}")


@cli.command()
@click.option(
    "--include",
    multiple=True,
    type=click.Choice(STATS_SECTIONS),
    help="Sections to compute (repeatable; default: all but coverage)",
)
@click.option("--json", "as_json", is_flag=True, help="Print the raw report")
def stats(include: tuple[str, ...], as_json: bool) -> None:
    """Counts and breakdowns over the whole store."""
    report = _tree().stats(include or DEFAULT_STATS_SECTIONS)
    if as_json:
        click.echo(json.dumps(report, indent=2, ensure_ascii=False))
        return

    from rich.console import Console
    from rich.table import Table

    console = Console()
    click.echo(f"{report['total_entries']} entries")
    if "summary" in report:
        s = report["summary"]
        click.echo(f"  size          : {s['total_size_bytes']} bytes")
        click.echo(f"  with code     : {s['with_code_examples']}")
        click.echo(f"  with links    : {s['with_relationships']} ({s['total_relationships']} relations)")
    if "priorities" in report:
        table = Table(title="Priorities", header_style="bold")
        table.add_column("Priority")
        table.add_column("Count", justify="right")
        table.add_column("%", justify="right")
        for priority, count in report["priorities"]["counts"].items():
            table.add_row(priority, str(count), str(report["priorities"]["percentages"][priority]))
        console.print(table)
    if "categories" in report:
        table = Table(title="Categories", header_style="bold")
        table.add_column("Category")
        table.add_column("Count", justify="right")
        table.add_column("Subcategories")
        for name, cat in report["categories"].items():
            table.add_row(name, str(cat["count"]), ", ".join(cat["subcategories"]))
        console.print(table)
    if "orphaned" in report:
        click.echo(f"Orphaned: {report['orphaned']['count']} ({report['orphaned']['percentage']}%)")
    if "popular" in report:
        for item in report["popular"]["most_linked"]:
            click.echo(f"  {item['incoming_links']:>3}  {item['path']}")
    if "coverage" in report:
        stale = report["coverage"]["stale_entries"]
        click.echo(f"Stale (> {stale['threshold_days']} days): {stale['count']}")
