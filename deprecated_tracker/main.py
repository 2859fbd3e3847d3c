"""Deprecated Tracker CLI - find deprecated declarations and every place they are used."""
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import click
import typer
from rich.markup import escape
from rich.table import Table

from deprecated_tracker.analyzer.scanner import DeprecationScanner, ScanResult
from deprecated_tracker.config import __version__, get_config
from deprecated_tracker.errors import ScanError
from deprecated_tracker.models import SEVERITIES, USAGE_KIND
from deprecated_tracker.policy.ignore_rules import IgnoreManager
from deprecated_tracker.policy.pattern_matcher import normalize_path
from deprecated_tracker.policy.tags import TagNotFoundError, TagsManager, TagValidationError
from deprecated_tracker.policy.tracker_config import ConfigReader
from deprecated_tracker.reporting.exporter import ResultExporter
from deprecated_tracker.reporting.history import ScanHistory
from deprecated_tracker.reporting.statistics import StatisticsCalculator
from deprecated_tracker.utils.logger import configure_logging
from deprecated_tracker.utils.safe_console import SafeConsole

app = typer.Typer(
    name="deptracker",
    help="Track deprecated TypeScript/JavaScript declarations and their usages",
    add_completion=False
)
console = SafeConsole()

ignore_app = typer.Typer(name="ignore", help="Manage ignored files, members and patterns")
tags_app = typer.Typer(name="tags", help="Manage custom deprecation tags")
history_app = typer.Typer(name="history", help="Browse recorded scans")

OUTPUT_FORMATS = ("table", "json", "csv", "markdown")
FAIL_ON_LEVELS = ("none",) + SEVERITIES


def _project_root(project_path: str) -> Path:
    root = Path(project_path).resolve()
    if not root.is_dir():
        console.error(f"Project path does not exist: {root}")
        raise typer.Exit(1)
    return root


def _state_dir(root: Path) -> Path:
    return get_config().state_dir(root)


def _project_file(root: Path, file_path: str) -> str:
    """Absolute normalized path of a file argument given relative to the project root."""
    path = Path(file_path)
    if not path.is_absolute():
        path = root / path
    return normalize_path(str(path.resolve()))


def _build_scanner(root: Path, verbose: bool = False) -> DeprecationScanner:
    settings = get_config()
    configure_logging(settings.log_level, verbose)
    state_dir = settings.state_dir(root)

    custom_tags = TagsManager(state_dir).get_enabled_tags()
    tracker_config = ConfigReader(root).load_configuration(custom_tags)
    ignore_rules = IgnoreManager(state_dir).snapshot()

    return DeprecationScanner(
        root,
        config=tracker_config,
        ignore_rules=ignore_rules,
        max_workers=settings.max_workers,
        state_dir_name=settings.state_dir_name,
    )


def _reached_threshold(result: ScanResult, fail_on: str) -> bool:
    """True if any item has a severity at or above ``fail_on``."""
    if fail_on == "none":
        return False
    threshold = SEVERITIES.index(fail_on)
    return any(
        item.severity is not None and SEVERITIES.index(item.severity) >= threshold
        for item in result.items
    )


def _location(item, root: Path) -> str:
    """``path:line:column`` with a 1-based column, as editors expect."""
    try:
        display_path = Path(item.file_path).relative_to(root)
    except ValueError:
        display_path = item.file_path
    return f"{display_path}:{item.line}:{item.character + 1}"


def _print_results_table(result: ScanResult, root: Path):
    if not result.items:
        console.print("[bold green]No deprecated items found![/bold green]")
        return

    table = Table(title="Deprecated Items")
    table.add_column("Name", style="cyan")
    table.add_column("Kind", style="yellow")
    table.add_column("Location", style="magenta", no_wrap=False)
    table.add_column("Declared In", style="green", no_wrap=False)
    table.add_column("Reason")

    for item in result.items:
        declaration = item.deprecated_declaration
        declared_in = f"{declaration.file_name}:{declaration.line}" if declaration else ""
        table.add_row(
            escape(item.name),
            item.kind,
            escape(_location(item, root)),
            escape(declared_in),
            escape(item.deprecation_reason or ""),
        )

    console.print(table)
    console.print(f"\n[bold yellow]Summary:[/bold yellow]")
    console.print(f"  Files scanned: {result.files_scanned}")
    console.print(f"  Declarations: {len(result.declarations)}")
    console.print(f"  Usages: {len(result.usages)}")
    console.print(f"  Duration: {result.duration:.2f}s")


@app.command()
def scan(
    project_path: str = typer.Argument(".", help="Project root path to scan"),
    folder: Optional[str] = typer.Option(None, "--folder", help="Only report items inside this folder"),
    files: Optional[List[str]] = typer.Option(None, "--file", help="Only report items in these files (repeatable)"),
    changed: Optional[List[str]] = typer.Option(None, "--changed", help="Rescan changed files plus every file importing them (repeatable)"),
    output_format: str = typer.Option("table", "--format", "-f", click_type=click.Choice(OUTPUT_FORMATS), help="Output format"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write the report to this file"),
    fail_on: str = typer.Option("none", "--fail-on", click_type=click.Choice(FAIL_ON_LEVELS), help="Exit with code 1 when an item reaches this severity"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug diagnostics"),
):
    """Scan a project for deprecated declarations and their usages."""
    root = _project_root(project_path)

    try:
        scanner = _build_scanner(root, verbose)
        if changed:
            result = scanner.scan_files(changed, include_dependents=True)
        elif files:
            result = scanner.scan_files(files)
        elif folder:
            result = scanner.scan_folder(folder)
        else:
            if output_format == "table":
                with console.status("[bold blue]Scanning project...[/bold blue]"):
                    result = scanner.scan_project()
            else:
                result = scanner.scan_project()
    except ScanError as e:
        console.error(str(e))
        raise typer.Exit(1)

    ScanHistory(_state_dir(root)).save_scan(result.items, result.duration, result.files_scanned)

    if output_format == "table" and output is None:
        _print_results_table(result, root)
        for warning in result.warnings:
            console.warning(warning)
    else:
        exporter = ResultExporter()
        content = exporter.export(result.items, "json" if output_format == "table" else output_format)
        if output:
            saved = exporter.save_to_file(content, output)
            console.success(f"Report written to {saved}")
        else:
            typer.echo(content)

    if _reached_threshold(result, fail_on):
        raise typer.Exit(1)


@app.command()
def stats(
    project_path: str = typer.Argument(".", help="Project root path to scan"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug diagnostics"),
):
    """Scan a project and summarize where deprecated code is used most."""
    root = _project_root(project_path)
    try:
        result = _build_scanner(root, verbose).scan_project()
    except ScanError as e:
        console.error(str(e))
        raise typer.Exit(1)

    statistics = StatisticsCalculator().calculate_statistics(result.items)

    summary = Table(title="Deprecation Summary", show_header=True, header_style="bold cyan")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Count", justify="right", style="green")
    summary.add_row("Total Items", str(statistics.total_items))
    summary.add_row("Declarations", str(statistics.total_declarations))
    summary.add_row("Usages", str(statistics.total_usages))
    for kind, count in statistics.by_kind.items():
        summary.add_row(f"  {kind}", str(count))
    console.print(summary)

    if statistics.top_most_used:
        top = Table(title="Most Used Deprecated Declarations")
        top.add_column("Name", style="cyan")
        top.add_column("File", style="magenta")
        top.add_column("Usages", justify="right", style="green")
        for entry in statistics.top_most_used:
            top.add_row(escape(entry['name']), escape(entry['fileName']), str(entry['usageCount']))
        console.print(top)

    if statistics.hotspot_files:
        hotspots = Table(title="Hotspot Files")
        hotspots.add_column("File", style="magenta")
        hotspots.add_column("Items", justify="right", style="green")
        for entry in statistics.hotspot_files:
            hotspots.add_row(escape(entry['fileName']), str(entry['count']))
        console.print(hotspots)

    if statistics.quick_wins:
        console.print("\n[bold green]Quick wins[/bold green] (2 usages or fewer):")
        for entry in statistics.quick_wins:
            console.print(f"  {escape(entry['name'])} ({escape(entry['fileName'])}): {entry['usageCount']}")

    if statistics.needs_attention:
        console.print("\n[bold yellow]Missing deprecation reason:[/bold yellow]")
        for entry in statistics.needs_attention:
            console.print(f"  {escape(entry['name'])} ({entry['kind']}) in {escape(entry['fileName'])}")


# =========================================================================
# IGNORE RULES
# =========================================================================

@ignore_app.command("file")
def ignore_file(
    file_path: str = typer.Argument(..., help="File to ignore"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Ignore every item in a file."""
    root = _project_root(project_path)
    IgnoreManager(_state_dir(root)).ignore_file(_project_file(root, file_path))
    console.success(f"Ignoring {file_path}")


@ignore_app.command("member")
def ignore_member(
    name: str = typer.Argument(..., help="Member name to ignore"),
    file_path: Optional[str] = typer.Option(None, "--file", help="Only ignore the member in this file"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Ignore a member name in one file, or everywhere when no file is given."""
    root = _project_root(project_path)
    manager = IgnoreManager(_state_dir(root))
    if file_path:
        manager.ignore_method(_project_file(root, file_path), name)
        console.success(f"Ignoring {name} in {file_path}")
    else:
        manager.ignore_method_globally(name)
        console.success(f"Ignoring {name} in all files")


@ignore_app.command("file-pattern")
def ignore_file_pattern(
    pattern: str = typer.Argument(..., help="Glob matched against file paths"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Ignore files matching a glob pattern."""
    root = _project_root(project_path)
    IgnoreManager(_state_dir(root)).add_file_pattern(pattern)
    console.success(f"Added file pattern {pattern}")


@ignore_app.command("member-pattern")
def ignore_member_pattern(
    pattern: str = typer.Argument(..., help="Glob matched against member names"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Ignore members whose names match a glob pattern."""
    root = _project_root(project_path)
    IgnoreManager(_state_dir(root)).add_method_pattern(pattern)
    console.success(f"Added member pattern {pattern}")


@ignore_app.command("remove-file")
def ignore_remove_file(
    file_or_pattern: str = typer.Argument(..., help="Ignored file or file pattern to remove"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Stop ignoring a file or a file pattern."""
    root = _project_root(project_path)
    manager = IgnoreManager(_state_dir(root))
    if file_or_pattern in manager.snapshot().file_patterns:
        manager.remove_file_pattern(file_or_pattern)
    else:
        manager.remove_file_ignore(_project_file(root, file_or_pattern))
    console.success(f"No longer ignoring {file_or_pattern}")


@ignore_app.command("remove-member")
def ignore_remove_member(
    name_or_pattern: str = typer.Argument(..., help="Ignored member name or member pattern to remove"),
    file_path: Optional[str] = typer.Option(None, "--file", help="Only remove the ignore for this file"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Stop ignoring a member name or a member pattern."""
    root = _project_root(project_path)
    manager = IgnoreManager(_state_dir(root))
    if file_path is None and name_or_pattern in manager.snapshot().method_patterns:
        manager.remove_method_pattern(name_or_pattern)
    else:
        target = _project_file(root, file_path) if file_path else None
        manager.remove_method_ignore(name_or_pattern, target)
    console.success(f"No longer ignoring {name_or_pattern}")


@ignore_app.command("list")
def ignore_list(
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Show all ignore rules."""
    root = _project_root(project_path)
    rules = IgnoreManager(_state_dir(root)).snapshot()
    if rules.is_empty():
        console.print("[dim]No ignore rules.[/dim]")
        return

    table = Table(title="Ignore Rules")
    table.add_column("Type", style="yellow")
    table.add_column("Value", style="cyan", no_wrap=False)
    table.add_column("Scope", style="magenta")
    for path in sorted(rules.files):
        table.add_row("file", escape(path), "")
    for path, names in sorted(rules.methods.items()):
        for name in sorted(names):
            table.add_row("member", escape(name), escape(path))
    for name in sorted(rules.methods_global):
        table.add_row("member", escape(name), "all files")
    for pattern in rules.file_patterns:
        table.add_row("file pattern", escape(pattern), "")
    for pattern in rules.method_patterns:
        table.add_row("member pattern", escape(pattern), "")
    console.print(table)


@ignore_app.command("clear")
def ignore_clear(
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
):
    """Remove every ignore rule."""
    root = _project_root(project_path)
    if not yes and not typer.confirm("Remove all ignore rules?", default=False):
        raise typer.Exit(0)
    IgnoreManager(_state_dir(root)).clear_all()
    console.success("Ignore rules cleared")


# =========================================================================
# CUSTOM TAGS
# =========================================================================

@tags_app.command("list")
def tags_list(
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Show custom deprecation tags."""
    root = _project_root(project_path)
    tags = TagsManager(_state_dir(root)).get_all_tags()
    if not tags:
        console.print("[dim]No custom tags. Only @deprecated is tracked.[/dim]")
        return

    table = Table(title="Custom Tags")
    table.add_column("ID", style="dim")
    table.add_column("Tag", style="cyan")
    table.add_column("Label")
    table.add_column("Enabled", style="green")
    table.add_column("Color")
    for tag in tags:
        table.add_row(escape(tag.id), escape(tag.tag), escape(tag.label),
                      "yes" if tag.enabled else "no", tag.color)
    console.print(table)


@tags_app.command("add")
def tags_add(
    tag: str = typer.Argument(..., help="Tag text, e.g. @legacy"),
    label: str = typer.Option(..., "--label", "-l", help="Display label"),
    description: str = typer.Option("", "--description", "-d", help="What the tag means"),
    color: Optional[str] = typer.Option(None, "--color", help="Hex color, e.g. #ff6b6b"),
    disabled: bool = typer.Option(False, "--disabled", help="Create the tag disabled"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Add a custom tag that deprecates like @deprecated."""
    root = _project_root(project_path)
    try:
        created = TagsManager(_state_dir(root)).add_tag(
            tag, label, description, enabled=not disabled, color=color)
    except TagValidationError as e:
        console.error(str(e))
        raise typer.Exit(1)
    console.success(f"Added tag {created.tag} ({created.id})")


@tags_app.command("update")
def tags_update(
    tag_id: str = typer.Argument(..., help="Tag id (see 'tags list')"),
    tag: Optional[str] = typer.Option(None, "--tag", help="New tag text"),
    label: Optional[str] = typer.Option(None, "--label", "-l", help="New label"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New description"),
    color: Optional[str] = typer.Option(None, "--color", help="New hex color"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Update fields of a custom tag."""
    root = _project_root(project_path)
    try:
        updated = TagsManager(_state_dir(root)).update_tag(
            tag_id, tag=tag, label=label, description=description, color=color)
    except (TagNotFoundError, TagValidationError) as e:
        console.error(str(e))
        raise typer.Exit(1)
    console.success(f"Updated tag {updated.tag}")


@tags_app.command("remove")
def tags_remove(
    tag_id: str = typer.Argument(..., help="Tag id (see 'tags list')"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Delete a custom tag."""
    root = _project_root(project_path)
    try:
        TagsManager(_state_dir(root)).delete_tag(tag_id)
    except TagNotFoundError as e:
        console.error(str(e))
        raise typer.Exit(1)
    console.success(f"Removed tag {tag_id}")


def _set_tag_enabled(tag_id: str, project_path: str, enabled: bool):
    root = _project_root(project_path)
    try:
        updated = TagsManager(_state_dir(root)).update_tag(tag_id, enabled=enabled)
    except TagNotFoundError as e:
        console.error(str(e))
        raise typer.Exit(1)
    state = "enabled" if enabled else "disabled"
    console.success(f"Tag {updated.tag} {state}")


@tags_app.command("enable")
def tags_enable(
    tag_id: str = typer.Argument(..., help="Tag id (see 'tags list')"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Enable a custom tag."""
    _set_tag_enabled(tag_id, project_path, True)


@tags_app.command("disable")
def tags_disable(
    tag_id: str = typer.Argument(..., help="Tag id (see 'tags list')"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Disable a custom tag without deleting it."""
    _set_tag_enabled(tag_id, project_path, False)


# =========================================================================
# SCAN HISTORY
# =========================================================================

@history_app.command("list")
def history_list(
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
    limit: int = typer.Option(0, "--limit", help="Show only the newest N scans"),
):
    """List recorded scans, newest first."""
    root = _project_root(project_path)
    scans = ScanHistory(_state_dir(root)).get_history_metadata(limit or None)
    if not scans:
        console.print("[dim]No scans recorded.[/dim]")
        return

    table = Table(title="Scan History", show_header=True, header_style="bold cyan")
    table.add_column("Scan ID", style="dim")
    table.add_column("When", style="cyan")
    table.add_column("Items", justify="right", style="green")
    table.add_column("Declarations", justify="right")
    table.add_column("Usages", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Duration", justify="right")
    for metadata in scans:
        when = datetime.fromtimestamp(metadata['timestamp'] / 1000).strftime('%Y-%m-%d %H:%M:%S')
        file_count = metadata.get('fileCount')
        table.add_row(
            metadata['scanId'],
            when,
            str(metadata['totalItems']),
            str(metadata['declarationCount']),
            str(metadata['usageCount']),
            "-" if file_count is None else str(file_count),
            f"{metadata['duration']:.2f}s",
        )
    console.print(table)


@history_app.command("show")
def history_show(
    scan_id: str = typer.Argument(..., help="Scan id (see 'history list')"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
    output_format: str = typer.Option("table", "--format", "-f", click_type=click.Choice(OUTPUT_FORMATS), help="Output format"),
):
    """Show the items of a recorded scan."""
    root = _project_root(project_path)
    stored = ScanHistory(_state_dir(root)).get_scan_by_id(scan_id)
    if stored is None:
        console.error(f"Scan not found: {scan_id}")
        raise typer.Exit(1)

    if output_format != "table":
        typer.echo(ResultExporter().export(stored.items, output_format))
        return

    result = ScanResult(
        items=stored.items,
        files_scanned=stored.metadata.get('fileCount') or 0,
        duration=stored.metadata.get('duration') or 0.0,
    )
    _print_results_table(result, root)


@history_app.command("delete")
def history_delete(
    scan_id: str = typer.Argument(..., help="Scan id (see 'history list')"),
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
):
    """Delete one recorded scan."""
    root = _project_root(project_path)
    if not ScanHistory(_state_dir(root)).delete_scan(scan_id):
        console.error(f"Scan not found: {scan_id}")
        raise typer.Exit(1)
    console.success(f"Deleted scan {scan_id}")


@history_app.command("clear")
def history_clear(
    project_path: str = typer.Option(".", "--project", "-p", help="Project root path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
):
    """Delete every recorded scan."""
    root = _project_root(project_path)
    if not yes and not typer.confirm("Delete all recorded scans?", default=False):
        raise typer.Exit(0)
    ScanHistory(_state_dir(root)).clear_history()
    console.success("Scan history cleared")


app.add_typer(ignore_app)
app.add_typer(tags_app)
app.add_typer(history_app)


def _version_callback(value: bool):
    if value:
        typer.echo(f"deptracker {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True,
                                 help="Show the version and exit"),
):
    """Deprecated Tracker - find deprecated declarations and every place they are used."""
    pass


if __name__ == "__main__":
    app()
