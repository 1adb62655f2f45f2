"""
CLI for claude-fig.

Edit Claude Code settings files from the terminal, or serve the local
dashboard API.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from claudefig.claude_md import ClaudeMDHierarchy
from claudefig.config import FigConfig
from claudefig.discovery import ProjectDiscovery
from claudefig.editor import SettingsEditor
from claudefig.errors import FigError
from claudefig.health import Severity, apply_auto_fix, build_context, run_checks
from claudefig.mcp import MCPConfigFile
from claudefig.merge import load_merged_settings
from claudefig.models import EditingTarget, MCPServer, PermissionType
from claudefig.presets import PERMISSION_PRESETS, env_var_description
from claudefig.rules import copy_rule, move_rule
from claudefig.store import DocumentStore

console = Console()
logger = logging.getLogger(__name__)

TARGET_CHOICES = click.Choice([t.value for t in EditingTarget])


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def get_config() -> FigConfig:
    """Load configuration from environment, exiting on bad values."""
    try:
        return FigConfig.from_env()
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        console.print("\nCheck FIG_HOME, FIG_PORT, FIG_POLL_INTERVAL and FIG_MAX_BACKUPS.")
        sys.exit(1)


def _fail(exc: FigError):
    console.print(f"[red]Error:[/red] {exc.message}")
    if exc.recovery_suggestion:
        console.print(f"[dim]{exc.recovery_suggestion}[/dim]")
    sys.exit(1)


def _target_and_project(target: str, project: Optional[str]):
    editing_target = EditingTarget(target)
    if editing_target.requires_project:
        return editing_target, Path(project or ".").resolve()
    return editing_target, None


def _run_edit(target: str, project: Optional[str], edit: Callable[[SettingsEditor], bool]):
    """Load the target file, apply ``edit`` and save if anything changed."""
    store = DocumentStore(get_config())
    editing_target, project_path = _target_and_project(target, project)

    async def _go():
        editor = SettingsEditor(store, editing_target, project_path)
        await editor.load()
        changed = edit(editor)
        if changed:
            await editor.save()
        return editor, changed

    try:
        editor, changed = asyncio.run(_go())
    except FigError as e:
        _fail(e)
    except (ValueError, IndexError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    if changed:
        console.print(f"[green]Saved[/green] {editor.path}")
    else:
        console.print("[yellow]No changes[/yellow]")
    return editor


def target_options(f):
    f = click.option(
        "--project", "-p", help="Project directory (defaults to the current directory)"
    )(f)
    f = click.option(
        "--target", "-t", type=TARGET_CHOICES, default=EditingTarget.GLOBAL.value,
        show_default=True, help="Settings file to edit",
    )(f)
    return f


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def main(verbose: bool):
    """claude-fig - Edit Claude Code settings safely."""
    setup_logging(verbose)


@main.command()
@click.option("--host", help="Bind address (default FIG_HOST or 127.0.0.1)")
@click.option("--port", type=int, help="Port (default FIG_PORT or 8765)")
def serve(host: Optional[str], port: Optional[int]):
    """Serve the local dashboard API."""
    import uvicorn

    from claudefig.api.main import create_app
    from claudefig.context import AppContext

    config = get_config()
    if host:
        config.host = host
    if port:
        config.port = port
    app = create_app(AppContext.create(config))
    console.print(f"[bold]claude-fig[/bold] dashboard on http://{config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port, log_level="warning")


@main.command()
@target_options
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def show(target: str, project: Optional[str], as_json: bool):
    """Show one settings file."""
    store = DocumentStore(get_config())
    editing_target, project_path = _target_and_project(target, project)
    try:
        document = store.load(editing_target, project_path)
    except FigError as e:
        _fail(e)

    if as_json:
        click.echo(json.dumps(document.settings.to_dict(), indent=2, sort_keys=True))
        return
    if not document.exists:
        console.print(f"[yellow]{document.path} does not exist[/yellow]")
        return

    settings = document.settings
    table = Table(title=f"{editing_target.label}", show_header=True)
    table.add_column("Type", style="cyan", width=8)
    table.add_column("Rule")
    for rule in (settings.permissions.allow or []) if settings.permissions else []:
        table.add_row("[green]allow[/green]", rule)
    for rule in (settings.permissions.deny or []) if settings.permissions else []:
        table.add_row("[red]deny[/red]", rule)
    console.print(table)

    if settings.env:
        env_table = Table(title="Environment", show_header=True)
        env_table.add_column("Key", style="magenta")
        env_table.add_column("Value")
        env_table.add_column("Description", style="dim")
        for key, value in sorted(settings.env.items()):
            env_table.add_row(key, value, env_var_description(key) or "")
        console.print(env_table)

    extras = []
    if settings.attribution is not None:
        extras.append(f"Attribution: {json.dumps(settings.attribution.to_dict())}")
    if settings.disallowedTools:
        extras.append(f"Disallowed tools: {', '.join(settings.disallowedTools)}")
    if settings.hooks:
        extras.append(f"Hooks: {', '.join(sorted(settings.hooks))}")
    if extras:
        console.print(Panel("\n".join(extras), title=str(document.path)))


@main.command()
@click.option("--project", "-p", default=".", help="Project directory")
def effective(project: str):
    """Show effective settings for a project, with where each value comes from."""
    store = DocumentStore(get_config())
    try:
        merged = asyncio.run(load_merged_settings(store, Path(project).resolve()))
    except FigError as e:
        _fail(e)

    table = Table(title="Effective Settings", show_header=True)
    table.add_column("Kind", style="cyan")
    table.add_column("Value")
    table.add_column("Source", style="dim")
    for entry in merged.allow:
        table.add_row("allow", entry.value, entry.source.display_name)
    for entry in merged.deny:
        table.add_row("deny", entry.value, entry.source.display_name)
    for key, entry in sorted(merged.env.items()):
        table.add_row("env", f"{key}={entry.value}", entry.source.display_name)
    for entry in merged.disallowed_tools:
        table.add_row("disallowed", entry.value, entry.source.display_name)
    if merged.attribution is not None:
        table.add_row(
            "attribution",
            json.dumps(merged.attribution.value.to_dict()),
            merged.attribution.source.display_name,
        )
    for event in merged.hook_events:
        sources = sorted({v.source.display_name for v in merged.hooks[event]})
        table.add_row("hook", event, ", ".join(sources))
    console.print(table)


# --- permissions ---

@main.group()
def permissions():
    """Add or remove permission rules."""
    pass


@permissions.command(name="add")
@click.argument("rule")
@click.option("--deny", is_flag=True, help="Add a deny rule instead of allow")
@target_options
def permissions_add(rule: str, deny: bool, target: str, project: Optional[str]):
    """Add RULE, e.g. 'Bash(npm run *)'."""
    rule_type = PermissionType.DENY if deny else PermissionType.ALLOW
    _run_edit(target, project, lambda e: e.add_permission_rule(rule, rule_type))


@permissions.command(name="remove")
@click.argument("rule")
@click.option("--deny", is_flag=True, help="Remove from deny rules instead of allow")
@target_options
def permissions_remove(rule: str, deny: bool, target: str, project: Optional[str]):
    """Remove RULE."""
    rule_type = PermissionType.DENY if deny else PermissionType.ALLOW

    def _remove(editor: SettingsEditor) -> bool:
        for index, (existing, t) in enumerate(editor.session.working.permission_rules):
            if existing == rule and t == rule_type:
                return editor.remove_permission_rule(index)
        return False

    _run_edit(target, project, _remove)


@permissions.command(name="copy")
@click.argument("rule")
@click.option("--deny", is_flag=True, help="Copy a deny rule instead of allow")
@click.option("--to", "destination", type=TARGET_CHOICES, required=True, help="Settings file to copy into")
@click.option("--move-from", "source", type=TARGET_CHOICES, help="Remove the rule from this file afterwards")
@click.option("--project", "-p", help="Project directory (defaults to the current directory)")
def permissions_copy(rule: str, deny: bool, destination: str, source: Optional[str], project: Optional[str]):
    """Copy RULE into another settings file, or move it with --move-from."""
    store = DocumentStore(get_config())
    rule_type = PermissionType.DENY if deny else PermissionType.ALLOW
    project_path = Path(project or ".").resolve()
    try:
        if source:
            changed = move_rule(store, rule, rule_type, source, destination, project_path)
        else:
            changed = copy_rule(store, rule, rule_type, destination, project_path)
    except FigError as e:
        _fail(e)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    label = EditingTarget(destination).label
    if changed is None:
        console.print(f"[yellow]{rule} is not in {EditingTarget(source).label}[/yellow]")
    elif changed:
        console.print(f"[green]{'Moved' if source else 'Copied'}[/green] {rule} to {label}")
    else:
        console.print(f"[yellow]{rule} already in {label}[/yellow]")


# --- presets ---

@main.group()
def presets():
    """Quick-add permission presets."""
    pass


@presets.command(name="list")
def presets_list():
    """List available presets."""
    table = Table(title="Permission Presets", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Rules")
    for preset_id, preset in PERMISSION_PRESETS.items():
        rules = ", ".join(f"{t.value}:{r}" for r, t in preset["rules"])
        table.add_row(preset_id, preset["name"], rules)
    console.print(table)


@presets.command(name="apply")
@click.argument("preset_id", type=click.Choice(list(PERMISSION_PRESETS)))
@target_options
def presets_apply(preset_id: str, target: str, project: Optional[str]):
    """Apply PRESET_ID, skipping rules that already exist."""
    _run_edit(target, project, lambda e: e.apply_preset(preset_id))


# --- env ---

@main.group()
def env():
    """Set or unset environment variables."""
    pass


@env.command(name="set")
@click.argument("key")
@click.argument("value")
@target_options
def env_set(key: str, value: str, target: str, project: Optional[str]):
    """Set KEY to VALUE."""

    def _set(editor: SettingsEditor) -> bool:
        if any(k == key for k, _ in editor.session.working.environment):
            return editor.update_environment_variable(key, key, value)
        return editor.add_environment_variable(key, value)

    _run_edit(target, project, _set)


@env.command(name="unset")
@click.argument("key")
@target_options
def env_unset(key: str, target: str, project: Optional[str]):
    """Remove KEY."""
    _run_edit(target, project, lambda e: e.remove_environment_variable(key))


# --- attribution ---

@main.command()
@click.option("--commits/--no-commits", default=None, help="Attribute commits")
@click.option("--pull-requests/--no-pull-requests", default=None, help="Attribute pull requests")
@click.option("--clear", is_flag=True, help="Remove the attribution block")
@target_options
def attribution(
    commits: Optional[bool],
    pull_requests: Optional[bool],
    clear: bool,
    target: str,
    project: Optional[str],
):
    """Update commit / pull request attribution."""
    if clear:
        commits = pull_requests = None
    elif commits is None and pull_requests is None:
        console.print("[yellow]Nothing to change; pass --commits/--pull-requests or --clear[/yellow]")
        return
    _run_edit(target, project, lambda e: e.update_attribution(commits, pull_requests))


# --- claude-md ---

@main.group(name="claude-md")
def claude_md():
    """Inspect CLAUDE.md files."""
    pass


@claude_md.command(name="list")
@click.option("--project", "-p", default=".", help="Project directory")
def claude_md_list(project: str):
    """List the CLAUDE.md hierarchy for a project."""
    config = get_config()
    hierarchy = ClaudeMDHierarchy(Path(project).resolve(), config.home_dir)
    table = Table(title="CLAUDE.md Files", show_header=True)
    table.add_column("Level", style="cyan")
    table.add_column("Path")
    table.add_column("Exists", justify="center")
    table.add_column("Git", justify="center")
    for f in hierarchy.load_files():
        table.add_row(
            f.display_name,
            f.display_path,
            "[green]yes[/green]" if f.exists else "[dim]no[/dim]",
            "tracked" if f.tracked_by_git else "",
        )
    console.print(table)


# --- projects ---

@main.group()
def projects():
    """Find projects Claude Code has been used in."""
    pass


@projects.command(name="list")
@click.option("--scan", is_flag=True, help="Also scan common source directories")
@click.option("--dir", "directories", multiple=True, help="Directory to scan (repeatable; implies --scan)")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def projects_list(scan: bool, directories: tuple, as_json: bool):
    """List known projects, most recently changed first."""
    discovery = ProjectDiscovery(DocumentStore(get_config()))
    found = discovery.discover(scan=scan or bool(directories), directories=directories or None)
    if as_json:
        click.echo(json.dumps([p.to_dict() for p in found], indent=2))
        return
    if not found:
        console.print("[yellow]No projects found[/yellow]")
        return
    table = Table(title="Projects", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Path")
    table.add_column("Config")
    table.add_column("Modified", style="dim")
    for p in found:
        config = [name for name, has in (
            ("shared", p.has_settings),
            ("local", p.has_local_settings),
            ("mcp", p.has_mcp_config),
        ) if has]
        name = p.display_name if p.exists else f"[dim]{p.display_name} (missing)[/dim]"
        modified = p.last_modified.strftime("%Y-%m-%d %H:%M") if p.last_modified else ""
        table.add_row(name, str(p.path), ", ".join(config), modified)
    console.print(table)


# --- mcp ---

@main.group()
def mcp():
    """Edit a project's MCP servers (.mcp.json)."""
    pass


def _mcp_file(project: Optional[str]) -> MCPConfigFile:
    return MCPConfigFile(DocumentStore(get_config()), Path(project or ".").resolve())


def _parse_pairs(pairs: tuple, what: str) -> dict:
    parsed = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint=what)
        parsed[key.strip()] = value
    return parsed


@mcp.command(name="list")
@click.option("--project", "-p", help="Project directory (defaults to the current directory)")
def mcp_list(project: Optional[str]):
    """List MCP servers in .mcp.json."""
    mcp_file = _mcp_file(project)
    try:
        document = mcp_file.load()
    except FigError as e:
        _fail(e)
    if not document.exists:
        console.print(f"[yellow]{document.path} does not exist[/yellow]")
        return
    table = Table(title=str(document.path), show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("Transport")
    table.add_column("Command / URL")
    for name in document.config.server_names:
        server = document.config.server(name)
        if server.is_remote:
            target = server.url or ""
        else:
            target = " ".join([server.command or ""] + (server.args or []))
        table.add_row(name, server.transport, target)
    console.print(table)


@mcp.command(name="add")
@click.argument("name")
@click.argument("command_or_url")
@click.argument("args", nargs=-1)
@click.option("--http", "remote", is_flag=True, help="COMMAND_OR_URL is an HTTP server URL")
@click.option("--env", "-e", "env_pairs", multiple=True, help="KEY=VALUE environment variable")
@click.option("--header", "-H", "header_pairs", multiple=True, help="KEY=VALUE HTTP header")
@click.option("--project", "-p", help="Project directory (defaults to the current directory)")
def mcp_add(
    name: str,
    command_or_url: str,
    args: tuple,
    remote: bool,
    env_pairs: tuple,
    header_pairs: tuple,
    project: Optional[str],
):
    """Add server NAME running COMMAND_OR_URL [ARGS]..."""
    if remote:
        server = MCPServer.http(command_or_url, _parse_pairs(header_pairs, "--header"))
    else:
        server = MCPServer.stdio(command_or_url, args, _parse_pairs(env_pairs, "--env"))
    mcp_file = _mcp_file(project)
    try:
        document = mcp_file.add_server(name, server)
    except FigError as e:
        _fail(e)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    console.print(f"[green]Added[/green] {name} to {document.path}")


@mcp.command(name="remove")
@click.argument("name")
@click.option("--project", "-p", help="Project directory (defaults to the current directory)")
def mcp_remove(name: str, project: Optional[str]):
    """Remove server NAME."""
    mcp_file = _mcp_file(project)
    try:
        document = mcp_file.remove_server(name)
    except FigError as e:
        _fail(e)
    console.print(f"[green]Removed[/green] {name} from {document.path}")


# --- health ---

SEVERITY_STYLES = {
    Severity.SECURITY: "bold red",
    Severity.WARNING: "yellow",
    Severity.SUGGESTION: "blue",
    Severity.GOOD: "green",
}


@main.command()
@click.option("--project", "-p", default=".", help="Project directory")
@click.option("--fix", is_flag=True, help="Apply every available auto-fix")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def health(project: str, fix: bool, as_json: bool):
    """Check a project's Claude Code configuration for common problems."""
    store = DocumentStore(get_config())
    project_path = Path(project).resolve()
    findings = run_checks(build_context(store, project_path))

    if fix:
        for finding in findings:
            if finding.auto_fix is None:
                continue
            try:
                applied = apply_auto_fix(store, project_path, finding.auto_fix)
            except FigError as e:
                _fail(e)
            if applied:
                console.print(f"[green]Fixed:[/green] {finding.auto_fix.label}")
        findings = run_checks(build_context(store, project_path))

    if as_json:
        click.echo(json.dumps([f.to_dict() for f in findings], indent=2))
        return
    table = Table(title=f"Health: {project_path.name}", show_header=True)
    table.add_column("Severity")
    table.add_column("Finding")
    table.add_column("Fix", style="dim")
    for finding in findings:
        style = SEVERITY_STYLES[finding.severity]
        table.add_row(
            f"[{style}]{finding.severity.value}[/{style}]",
            finding.title,
            finding.auto_fix.label if finding.auto_fix else "",
        )
    console.print(table)


if __name__ == "__main__":
    main()
