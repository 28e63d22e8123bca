"""Command line interface for repodex."""

from __future__ import annotations

import difflib
import json
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from repodex.catalog import CatalogError, ProjectCatalog
from repodex.config import ConfigError, ConfigManager, RepodexConfig, resolve_with_precedence
from repodex.logs import configure_logging
from repodex.scanning import ScanProgress
from repodex.search import ProjectFilters, SortSpec
from repodex.state import Project

console = Console()


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _dispatch_error(exc: Exception, *, action: str, json_output: bool) -> None:
    """Route an exception raised by a command body to :func:`_handle_cli_error`."""
    if isinstance(exc, ConfigError):
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    elif isinstance(exc, CatalogError):
        _handle_cli_error(str(exc), code=exc.code.lower(), json_output=json_output, original=exc)
    elif isinstance(exc, click.ClickException):
        _handle_cli_error(exc.format_message(), code="cli_error", json_output=json_output, original=exc)
    else:
        _handle_cli_error(
            f"Unexpected error while {action}: {exc}",
            code="internal_error",
            json_output=json_output,
            details={"exception": type(exc).__name__},
            original=exc,
        )


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Conditionally print CLI output according to quiet/summary settings.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (`detail`, `summary`, `warning`, or `error`).
        quiet: Whether quiet mode is active.
        summary_only: Whether only summary lines should be emitted.
    """

    if quiet and mode != "error":
        return

    important_modes = {"summary", "warning", "error"}
    if summary_only and mode not in important_modes:
        return

    console.print(message)


def _format_summary_line(command: str, target: Path | str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands."""

    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {target}: {parts}.[/green]"


def _load_config() -> RepodexConfig:
    """Load configuration and install logging handlers for this invocation."""
    manager = ConfigManager()
    manager.ensure_exists()
    config = manager.load()
    configure_logging(config.logging, log_dir=Path(config.store.data_dir).expanduser())
    return config


def _resolve_output_modes(
    ctx: click.Context,
    config: RepodexConfig,
    *,
    json_output: bool,
    quiet: bool,
    summary_mode: bool,
) -> tuple[bool, bool]:
    """Combine explicit flags with configured defaults.

    Returns:
        tuple[bool, bool]: Effective quiet and summary-only flags.

    Raises:
        click.ClickException: If incompatible modes are requested.
    """
    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    explicit_summary = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE

    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
    summary_only = summary_mode if explicit_summary else config.cli.summary_default

    if json_output:
        if explicit_quiet and quiet_enabled:
            raise click.ClickException("--json cannot be combined with --quiet.")
        if explicit_summary and summary_only:
            raise click.ClickException("--json cannot be combined with --summary.")
        return False, False

    if quiet_enabled and summary_only:
        raise click.ClickException(
            "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
        )
    return quiet_enabled, summary_only


@contextmanager
def _open_catalog(config: RepodexConfig) -> Iterator[ProjectCatalog]:
    catalog = ProjectCatalog.from_config(config)
    with catalog:
        yield catalog


def _project_table(projects: list[Project], *, title: str | None = None) -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("ID", overflow="fold", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Language")
    table.add_column("Importance", justify="right")
    table.add_column("Tags")
    table.add_column("Path", overflow="fold")
    for project in projects:
        table.add_row(
            project.id[:8],
            project.name,
            project.type,
            project.language or "-",
            str(project.importance),
            ", ".join(project.tags) or "-",
            project.path,
        )
    return table


def _project_details(project: Project) -> Table:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value", overflow="fold")
    for key, value in project.to_json_dict().items():
        if isinstance(value, list):
            rendered = ", ".join(
                json.dumps(item) if isinstance(item, dict) else str(item) for item in value
            )
        else:
            rendered = "-" if value is None else str(value)
        table.add_row(key, rendered or "-")
    return table


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a nested value within a dictionary for a dotted path.

    Raises:
        ConfigError: If a non-mapping value is encountered along the path.
    """

    node = target
    for segment in path[:-1]:
        existing = node.get(segment)
        if existing is None:
            existing = {}
            node[segment] = existing
        elif not isinstance(existing, dict):
            raise ConfigError(
                f"Cannot assign into '{segment}' because it is not a mapping in the config file."
            )
        node = existing
    node[path[-1]] = value


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="repodex")
def cli() -> None:
    """Repodex discovers the code projects on your disk and keeps a searchable catalog."""


@cli.command()
@click.argument("paths", nargs=-1, type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option(
    "--include-root",
    is_flag=True,
    help="Record each PATH as a project even when it contains nested repositories.",
)
@click.option("--max-depth", type=click.IntRange(min=1), help="Maximum depth searched for repositories.")
@click.option("--min-size", type=click.IntRange(min=0), help="Drop projects smaller than this many bytes.")
@click.option("--json", "json_output", is_flag=True, help="Emit the scan result as JSON.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def scan(
    ctx: click.Context,
    paths: tuple[str, ...],
    include_root: bool,
    max_depth: int | None,
    min_size: int | None,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Scan PATHS (or the configured roots) and update the catalog."""

    try:
        config = _load_config()
        quiet_enabled, summary_only = _resolve_output_modes(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )

        overrides: dict[str, Any] = {}
        if max_depth is not None:
            overrides["max_depth"] = max_depth
        if min_size is not None:
            overrides["min_size_bytes"] = min_size
        roots = [{"path": path, "include_as_project": include_root} for path in paths]

        with _open_catalog(config) as catalog:

            def _on_progress(_: str, progress: ScanProgress) -> None:
                _emit_message(
                    f"[cyan]Processed {progress.processed}/{progress.discovered}[/cyan] "
                    f"{progress.current_path}",
                    mode="detail",
                    quiet=quiet_enabled or json_output,
                    summary_only=summary_only,
                )

            unsubscribe = catalog.jobs.on_progress(_on_progress)
            try:
                job_id = catalog.start_scan(roots or None, **overrides)
                report = catalog.wait_for_scan(job_id)
            finally:
                unsubscribe()

        if json_output:
            console.print_json(data=report.model_dump(mode="json"))
            if report.status == "error":
                raise SystemExit(1)
            return

        if report.status == "error":
            raise click.ClickException(f"Scan failed: {report.error}")

        for error in report.errors:
            _emit_message(
                f"[yellow]Skipped {error.path}: {error.error}[/yellow]",
                mode="warning",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )
        stats = report.stats
        metrics = {
            "status": report.status,
            "scanned": stats.total_scanned if stats else report.processed,
            "git": stats.git_repos if stats else 0,
            "local": stats.local_projects if stats else 0,
            "errors": len(report.errors),
        }
        target = ", ".join(paths) if paths else "configured roots"
        _emit_message(
            _format_summary_line("Scan", target, metrics),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except Exception as exc:
        _dispatch_error(exc, action="scanning", json_output=json_output)


@cli.command("list")
@click.argument("query", required=False)
@click.option("--type", "project_type", type=click.Choice(["git", "local"]), help="Filter by type.")
@click.option(
    "--provider",
    type=click.Choice(["github", "gitlab", "bitbucket", "other"]),
    help="Filter by hosting provider.",
)
@click.option("--tag", "tags", multiple=True, help="Keep projects carrying any of these tags.")
@click.option("--importance", type=click.IntRange(0, 5), help="Filter by importance.")
@click.option("--sort", "sort_expr", type=str, help="Sort field; prefix with '-' for descending.")
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True, help="Page number.")
@click.option("--page-size", type=click.IntRange(min=1), help="Projects per page.")
@click.option("--json", "json_output", is_flag=True, help="Emit results as JSON.")
def list_projects(
    query: str | None,
    project_type: str | None,
    provider: str | None,
    tags: tuple[str, ...],
    importance: int | None,
    sort_expr: str | None,
    page: int,
    page_size: int | None,
    json_output: bool,
) -> None:
    """List catalog projects, fuzzy-matching QUERY when given."""

    try:
        config = _load_config()
        try:
            sort = SortSpec.parse(sort_expr) if sort_expr else None
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
        filters = ProjectFilters(
            type=project_type,
            provider=provider,
            tags=list(tags),
            importance=importance,
        )
        with _open_catalog(config) as catalog:
            result = catalog.list_projects(
                query,
                filters=filters,
                sort=sort,
                page=page,
                page_size=page_size or config.cli.page_size,
            )

        if json_output:
            console.print_json(
                data={
                    "projects": [project.to_json_dict() for project in result.projects],
                    "total": result.total,
                    "page": result.page,
                    "pageSize": result.page_size,
                }
            )
            return

        if not result.projects:
            console.print("[yellow]No projects found.[/yellow]")
            return
        console.print(_project_table(result.projects))
        console.print(
            f"[dim]Showing page {result.page} of {result.pages} ({result.total} projects).[/dim]"
        )
    except Exception as exc:
        _dispatch_error(exc, action="listing projects", json_output=json_output)


@cli.command()
@click.argument("project_id")
@click.option("--json", "json_output", is_flag=True, help="Emit the project as JSON.")
def show(project_id: str, json_output: bool) -> None:
    """Show every stored field of PROJECT_ID."""

    try:
        config = _load_config()
        with _open_catalog(config) as catalog:
            project = catalog.get_project(project_id)
        if json_output:
            console.print_json(data=project.to_json_dict())
            return
        console.print(f"[bold]{project.name}[/bold]")
        console.print(_project_details(project))
    except Exception as exc:
        _dispatch_error(exc, action="showing project", json_output=json_output)


@cli.command()
@click.argument("project_id")
@click.option("--name", type=str, help="Rename the project.")
@click.option("--tags", type=str, help="Comma-separated tags replacing the current ones.")
@click.option("--add-tag", "add_tags", multiple=True, help="Tag to add.")
@click.option("--remove-tag", "remove_tags", multiple=True, help="Tag to remove.")
@click.option("--importance", type=click.IntRange(0, 5), help="Importance from 0 to 5.")
@click.option("--description", type=str, help="Free-form description.")
@click.option("--json", "json_output", is_flag=True, help="Emit the updated project as JSON.")
def update(
    project_id: str,
    name: str | None,
    tags: str | None,
    add_tags: tuple[str, ...],
    remove_tags: tuple[str, ...],
    importance: int | None,
    description: str | None,
    json_output: bool,
) -> None:
    """Edit user metadata of PROJECT_ID."""

    try:
        config = _load_config()
        updates: dict[str, Any] = {}
        if name is not None:
            updates["name"] = name
        if importance is not None:
            updates["importance"] = importance
        if description is not None:
            updates["description"] = description

        with _open_catalog(config) as catalog:
            if tags is not None or add_tags or remove_tags:
                current = _split_csv(tags) if tags is not None else catalog.get_project(project_id).tags
                merged = [tag for tag in current if tag not in remove_tags]
                merged.extend(tag for tag in add_tags if tag not in merged)
                updates["tags"] = merged
            if not updates:
                raise click.ClickException("Nothing to update; pass at least one option.")
            project = catalog.update_project(project_id, updates)

        if json_output:
            console.print_json(data=project.to_json_dict())
            return
        console.print(f"[green]Updated {project.name} ({project.id}).[/green]")
    except Exception as exc:
        _dispatch_error(exc, action="updating project", json_output=json_output)


@cli.command()
@click.argument("project_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.option("--json", "json_output", is_flag=True, help="Emit the outcome as JSON.")
def delete(project_id: str, yes: bool, json_output: bool) -> None:
    """Remove PROJECT_ID from the catalog (files on disk are untouched)."""

    try:
        config = _load_config()
        with _open_catalog(config) as catalog:
            project = catalog.get_project(project_id)
            if not yes and not json_output:
                click.confirm(f"Remove {project.name} from the catalog?", abort=True)
            catalog.delete_project(project_id)
        if json_output:
            console.print_json(data={"deleted": project_id})
            return
        console.print(f"[green]Removed {project.name} from the catalog.[/green]")
    except click.Abort:
        raise
    except Exception as exc:
        _dispatch_error(exc, action="deleting project", json_output=json_output)


@cli.command("export")
@click.argument("destination", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--json", "json_output", is_flag=True, help="Emit the outcome as JSON.")
def export_catalog(destination: Path, json_output: bool) -> None:
    """Write the whole catalog to DESTINATION as JSON."""

    try:
        config = _load_config()
        with _open_catalog(config) as catalog:
            count = catalog.export_to(destination)
        if json_output:
            console.print_json(data={"exported": count, "path": str(destination)})
            return
        console.print(f"[green]Exported {count} projects to {destination}.[/green]")
    except Exception as exc:
        _dispatch_error(exc, action="exporting catalog", json_output=json_output)


@cli.command("import")
@click.argument("source", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--mode",
    type=click.Choice(["replace", "merge"]),
    default="replace",
    show_default=True,
    help="Replace the catalog or merge records into it.",
)
@click.option(
    "--on-conflict",
    type=click.Choice(["overwrite", "skip"]),
    default="overwrite",
    show_default=True,
    help="How merge handles records that already exist.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit the outcome as JSON.")
def import_catalog(source: Path, mode: str, on_conflict: str, json_output: bool) -> None:
    """Load projects from a file written by `repodex export`."""

    try:
        config = _load_config()
        with _open_catalog(config) as catalog:
            summary = catalog.import_from(source, mode=mode, on_conflict=on_conflict)  # type: ignore[arg-type]
        if json_output:
            console.print_json(data=summary.model_dump(mode="json"))
            return
        console.print(
            _format_summary_line(
                "Import",
                source,
                {"mode": summary.mode, "imported": summary.imported, "skipped": summary.skipped},
            )
        )
    except Exception as exc:
        _dispatch_error(exc, action="importing catalog", json_output=json_output)


@cli.command("preview-import")
@click.argument("source", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--json", "json_output", is_flag=True, help="Emit the preview as JSON.")
def preview_import(source: Path, json_output: bool) -> None:
    """Show what SOURCE contains without importing it."""

    try:
        config = _load_config()
        with _open_catalog(config) as catalog:
            preview = catalog.preview_import(source)
        if json_output:
            console.print_json(
                data={
                    "version": preview.version,
                    "count": preview.count,
                    "projects": [project.to_json_dict() for project in preview.projects],
                }
            )
            return
        console.print(f"[bold]{source}[/bold]: {preview.count} projects (schema v{preview.version})")
        if preview.projects:
            console.print(_project_table(preview.projects, title="First projects"))
    except Exception as exc:
        _dispatch_error(exc, action="previewing import", json_output=json_output)


@cli.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
def clear(yes: bool) -> None:
    """Remove every project from the catalog."""

    try:
        config = _load_config()
        if not yes:
            click.confirm("Remove every project from the catalog?", abort=True)
        with _open_catalog(config) as catalog:
            catalog.clear()
        console.print("[green]Catalog cleared.[/green]")
    except click.Abort:
        raise
    except Exception as exc:
        _dispatch_error(exc, action="clearing catalog", json_output=False)


@cli.command()
@click.option(
    "--timestamp",
    type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]),
    help="Timestamp to apply (UTC); defaults to now.",
)
def touch(timestamp: datetime | None) -> None:
    """Set the last-modified time of every project."""

    try:
        config = _load_config()
        moment = timestamp.replace(tzinfo=timezone.utc) if timestamp else None
        with _open_catalog(config) as catalog:
            count = catalog.touch_all(moment)
        console.print(f"[green]Touched {count} projects.[/green]")
    except Exception as exc:
        _dispatch_error(exc, action="touching projects", json_output=False)


@cli.command()
def refresh() -> None:
    """Recompute last-modified times from the files on disk."""

    try:
        config = _load_config()
        with _open_catalog(config) as catalog:
            count = catalog.refresh_modified_from_fs()
        console.print(f"[green]Refreshed {count} projects.[/green]")
    except Exception as exc:
        _dispatch_error(exc, action="refreshing projects", json_output=False)


@cli.group()
def config() -> None:
    """Manage repodex configuration values."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must specify a dotted path such as 'scan.max_depth'.")

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        file_data = manager.load_file_overrides()
        _assign_nested(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=RepodexConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()

    diff = [
        line
        for line in difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
        if "# Last updated:" not in line
    ]
    if not any(line.startswith(("+", "-")) and not line.startswith(("+++", "---")) for line in diff):
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
