"""
CLI entry point for toolshed.

This module provides the Typer-based command-line interface. Every operator
flow goes through these commands.

Commands:
    tools       List, describe, install, remove, activate and prune tools
    registry    Search and describe tools in the remote registry
    secrets     Show, set and clear tool secrets
    facts       Show, set and clear remembered facts
    invoke      Run one tool through the invocation pipeline
    logs        Show the execution log
    chat        Talk to the agent

Architecture Note:
    The CLI is intentionally thin - it parses arguments, wires components
    together from Settings and delegates. Every failure prints one red line
    and exits with code 1.
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt
from rich.table import Table

from toolshed import __version__
from toolshed.agent.facts import LLMFactExtractor
from toolshed.agent.orchestrator import AgentConfig, AgentOrchestrator
from toolshed.config import Settings, load_settings
from toolshed.errors import ConfigError, ToolshedError
from toolshed.installer import ToolInstaller
from toolshed.invocation.interaction import ConsoleInteraction
from toolshed.invocation.pipeline import InvocationPipeline
from toolshed.llm.provider import OpenAICompatibleProvider, ProviderConfig
from toolshed.logging import configure_logging
from toolshed.registry.client import RegistryClient
from toolshed.schema import LogStatus
from toolshed.store.db import ToolshedDB
from toolshed.store.tool_store import LocalToolStore
from toolshed.tools.builtin import builtin_tools
from toolshed.tools.catalog import Catalog, build_catalog
from toolshed.tools.loaded import LoadedTool
from toolshed.vault.secret_store import SqliteSecretStore, secret_key

# Initialize Typer app with metadata
app = typer.Typer(
    name="toolshed",
    help="Install registry tools and run them behind secret and approval gates.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()


@dataclass
class AppState:
    """Per-invocation state shared by every command."""

    settings: Settings
    verbose: bool = False


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]toolshed[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to a YAML config file (default: $TOOLSHED_CONFIG).",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    toolshed - Tool runtime for LLM agents.

    Built-in and registry-installed tools, gated by declared secrets and
    human approval, with a full execution log.
    """
    try:
        settings = load_settings(config)
    except ConfigError as e:
        _fail(e.message)
    configure_logging(settings.log_level, verbose=verbose)
    ctx.obj = AppState(settings=settings, verbose=verbose)


# =============================================================================
# Helpers
# =============================================================================


def _fail(message: str) -> NoReturn:
    """Print one red line and exit 1."""
    console.print(f"[red]Error: {escape(message)}[/red]")
    raise typer.Exit(code=1)


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj.settings


def _open_store(settings: Settings) -> LocalToolStore:
    store = LocalToolStore(settings.tool_cache_dir)
    store.init()
    return store


def _registry(settings: Settings) -> RegistryClient:
    return RegistryClient(
        settings.require_registry(),
        timeout_seconds=settings.registry_timeout_seconds,
    )


def _load_catalog(settings: Settings, quiet: bool = False) -> Catalog:
    """Build the catalog, printing installed tools that failed to load."""
    store = _open_store(settings)
    result = store.load_tools()
    if not quiet:
        for error in result.errors:
            console.print(f"[yellow]Warning: {escape(error)}[/yellow]")
    catalog = build_catalog(builtin_tools(), result.tools)
    if not quiet:
        for name in catalog.shadowed:
            console.print(
                f"[yellow]Warning: installed tool {escape(name)} is shadowed by a built-in[/yellow]"
            )
    return catalog


@contextmanager
def _pipeline(settings: Settings, prompt_secrets: bool) -> Iterator[InvocationPipeline]:
    """Wire a pipeline with console interaction and on-disk storage."""
    catalog = _load_catalog(settings)
    with ToolshedDB(settings.db_path) as db, SqliteSecretStore(
        settings.resolved_secrets_db_path
    ) as secrets:
        secrets.init()
        yield InvocationPipeline(
            catalog,
            secrets,
            db=db,
            interaction=ConsoleInteraction(console),
            prompt_for_secrets=prompt_secrets or settings.prompt_for_secrets,
        )


def _parse_input(raw: str | None) -> dict:
    if raw is None or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        _fail(f"--input is not valid JSON: {e}")
    if not isinstance(data, dict):
        _fail("--input must be a JSON object")
    return data


def _status_markup(status: LogStatus) -> str:
    if status == LogStatus.SUCCESS:
        return "[green]success[/green]"
    if status == LogStatus.DENIED:
        return "[yellow]denied[/yellow]"
    return "[red]error[/red]"


def _flag(value: bool | None) -> str:
    return "yes" if value else "-"


# =============================================================================
# Tools Subcommand Group
# =============================================================================

tools_app = typer.Typer(
    name="tools",
    help="Manage the tool catalog and installed tools.",
    no_args_is_help=True,
)
app.add_typer(tools_app, name="tools")


@tools_app.command("list")
def tools_list(ctx: typer.Context) -> None:
    """List every callable tool (built-in and installed)."""
    try:
        catalog = _load_catalog(_settings(ctx))
    except ToolshedError as e:
        _fail(e.message)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Source")
    table.add_column("Approval", width=8)
    table.add_column("Secrets")
    table.add_column("Description")

    for tool in catalog:
        source = tool.manifest.ref if isinstance(tool, LoadedTool) else "built-in"
        table.add_row(
            tool.name,
            source,
            _flag(tool.requires_approval),
            ", ".join(tool.required_secrets) or "-",
            tool.description,
        )
    console.print(table)


@tools_app.command("describe")
def tools_describe(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Tool name in the catalog.")],
) -> None:
    """Show one tool and whether its secrets are set."""
    settings = _settings(ctx)
    try:
        catalog = _load_catalog(settings, quiet=True)
        tool = catalog.get(name)
        with SqliteSecretStore(settings.resolved_secrets_db_path) as secrets:
            secret_status = {
                secret: secrets.get_secret(secret_key(tool.name, secret)) is not None
                for secret in tool.required_secrets
            }
    except ToolshedError as e:
        _fail(e.message)

    console.print(f"[bold cyan]{escape(tool.name)}[/bold cyan]")
    console.print(f"  {escape(tool.description)}")
    if isinstance(tool, LoadedTool):
        console.print(f"  [bold]Installed:[/bold] {escape(tool.manifest.ref)}")
        if tool.manifest.provider:
            console.print(f"  [bold]Provider:[/bold] {escape(tool.manifest.provider)}")
    else:
        console.print("  [bold]Source:[/bold] built-in")
    console.print(f"  [bold]Requires approval:[/bold] {_flag(tool.requires_approval)}")
    for secret, is_set in secret_status.items():
        status = "[green]set[/green]" if is_set else "[red]missing[/red]"
        console.print(f"  [bold]Secret[/bold] {escape(secret)}: {status}")


@tools_app.command("installed")
def tools_installed(ctx: typer.Context) -> None:
    """List installed tools and their versions on disk."""
    try:
        store = _open_store(_settings(ctx))
        manifests = store.list_installed()
        versions = {m.id: store.list_versions(m.id) for m in manifests}
    except ToolshedError as e:
        _fail(e.message)

    if not manifests:
        console.print("[dim]No tools installed.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Active")
    table.add_column("Name")
    table.add_column("Provider")
    table.add_column("On disk")

    for manifest in manifests:
        table.add_row(
            manifest.id,
            manifest.version,
            manifest.name,
            manifest.provider or "-",
            ", ".join(versions[manifest.id]),
        )
    console.print(table)


@tools_app.command("install")
def tools_install(
    ctx: typer.Context,
    tool_id: Annotated[str, typer.Argument(help="Registry id of the tool.")],
    version: Annotated[
        Optional[str],
        typer.Option("--version", help="Version to install (default: latest)."),
    ] = None,
) -> None:
    """Install a tool from the registry and make it active."""
    settings = _settings(ctx)
    try:
        with _registry(settings) as registry:
            installer = ToolInstaller(registry, _open_store(settings))
            manifest = installer.install_from_registry(tool_id, version)
    except ToolshedError as e:
        _fail(e.message)

    console.print(f"[green]Installed {escape(manifest.ref)}[/green]")
    if manifest.required_secrets:
        console.print(
            f"[dim]Requires secrets: {escape(', '.join(manifest.required_secrets))} "
            f"(toolshed secrets set {escape(manifest.name)} <name>)[/dim]"
        )


@tools_app.command("remove")
def tools_remove(
    ctx: typer.Context,
    tool_id: Annotated[str, typer.Argument(help="Id of the installed tool.")],
) -> None:
    """Remove every installed version of a tool."""
    try:
        removed = _open_store(_settings(ctx)).remove_tool(tool_id)
    except (ToolshedError, ValueError) as e:
        _fail(getattr(e, "message", None) or str(e))

    if removed:
        console.print(f"[green]Removed {escape(tool_id)}[/green]")
    else:
        console.print(f"[yellow]{escape(tool_id)} is not installed[/yellow]")


@tools_app.command("activate")
def tools_activate(
    ctx: typer.Context,
    tool_id: Annotated[str, typer.Argument(help="Id of the installed tool.")],
    version: Annotated[str, typer.Argument(help="Installed version to activate.")],
) -> None:
    """Switch a tool to another installed version (rollback)."""
    try:
        manifest = _open_store(_settings(ctx)).activate_version(tool_id, version)
    except (ToolshedError, ValueError) as e:
        _fail(getattr(e, "message", None) or str(e))
    console.print(f"[green]Activated {escape(manifest.ref)}[/green]")


@tools_app.command("prune")
def tools_prune(
    ctx: typer.Context,
    tool_id: Annotated[str, typer.Argument(help="Id of the installed tool.")],
) -> None:
    """Delete every version of a tool except the active one."""
    try:
        removed = _open_store(_settings(ctx)).prune_versions(tool_id)
    except (ToolshedError, ValueError) as e:
        _fail(getattr(e, "message", None) or str(e))

    if removed:
        console.print(f"[green]Pruned {escape(', '.join(removed))}[/green]")
    else:
        console.print("[dim]Nothing to prune.[/dim]")


# =============================================================================
# Registry Subcommand Group
# =============================================================================

registry_app = typer.Typer(
    name="registry",
    help="Search and describe tools in the remote registry.",
    no_args_is_help=True,
)
app.add_typer(registry_app, name="registry")


@registry_app.command("search")
def registry_search(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Free-text search query.")],
    limit: Annotated[
        Optional[int],
        typer.Option("--limit", "-n", help="Maximum number of results."),
    ] = None,
    offset: Annotated[
        Optional[int],
        typer.Option("--offset", help="Result offset for paging."),
    ] = None,
    tags: Annotated[
        Optional[list[str]],
        typer.Option("--tag", "-t", help="Only tools with this tag (repeatable)."),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output in JSON format."),
    ] = False,
) -> None:
    """Search the registry."""
    try:
        with _registry(_settings(ctx)) as registry:
            result = registry.search_tools(query, limit=limit, offset=offset, tags=tags)
    except ToolshedError as e:
        _fail(e.message)

    if json_output:
        print(json.dumps(result.to_wire(), indent=2))
        return

    if not result.results:
        console.print("[dim]No tools found.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Version")
    table.add_column("Name")
    table.add_column("Summary")
    table.add_column("Tags")
    for summary in result.results:
        table.add_row(
            summary.id,
            summary.version,
            summary.name,
            summary.summary,
            ", ".join(summary.tags or []),
        )
    console.print(table)
    console.print(f"[dim]{len(result.results)} of {result.total:g} result(s)[/dim]")


@registry_app.command("describe")
def registry_describe(
    ctx: typer.Context,
    tool_id: Annotated[str, typer.Argument(help="Registry id of the tool.")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output in JSON format."),
    ] = False,
) -> None:
    """Show a tool's manifest from the registry."""
    try:
        with _registry(_settings(ctx)) as registry:
            manifest = registry.describe_tool(tool_id)
    except ToolshedError as e:
        _fail(e.message)

    if json_output:
        print(json.dumps(manifest.to_wire(), indent=2))
        return

    console.print(f"[bold cyan]{escape(manifest.name)}[/bold cyan] {escape(manifest.ref)}")
    console.print(f"  {escape(manifest.description)}")
    if manifest.provider:
        console.print(f"  [bold]Provider:[/bold] {escape(manifest.provider)}")
    if manifest.tags:
        console.print(f"  [bold]Tags:[/bold] {escape(', '.join(manifest.tags))}")
    console.print(f"  [bold]Requires approval:[/bold] {_flag(manifest.requires_approval)}")
    if manifest.required_secrets:
        console.print(f"  [bold]Secrets:[/bold] {escape(', '.join(manifest.required_secrets))}")


# =============================================================================
# Secrets Subcommand Group
# =============================================================================

secrets_app = typer.Typer(
    name="secrets",
    help="Manage tool secrets (write-once).",
    no_args_is_help=True,
)
app.add_typer(secrets_app, name="secrets")


@secrets_app.command("status")
def secrets_status(
    ctx: typer.Context,
    tool_name: Annotated[
        Optional[str],
        typer.Argument(help="Only this tool."),
    ] = None,
) -> None:
    """Show which declared secrets are set (never their values)."""
    settings = _settings(ctx)
    try:
        catalog = _load_catalog(settings, quiet=True)
        tools = [catalog.get(tool_name)] if tool_name else list(catalog)
        with SqliteSecretStore(settings.resolved_secrets_db_path) as secrets:
            rows = [
                (tool.name, secret, secrets.get_secret(secret_key(tool.name, secret)) is not None)
                for tool in tools
                for secret in tool.required_secrets
            ]
    except ToolshedError as e:
        _fail(e.message)

    if not rows:
        console.print("[dim]No tool declares secrets.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan")
    table.add_column("Secret")
    table.add_column("Status")
    for name, secret, is_set in rows:
        table.add_row(name, secret, "[green]set[/green]" if is_set else "[red]missing[/red]")
    console.print(table)


@secrets_app.command("set")
def secrets_set(
    ctx: typer.Context,
    tool_name: Annotated[str, typer.Argument(help="Tool the secret belongs to.")],
    secret_name: Annotated[str, typer.Argument(help="Secret name declared by the tool.")],
    value: Annotated[
        Optional[str],
        typer.Option("--value", help="Secret value (prompted for if omitted)."),
    ] = None,
) -> None:
    """Store a secret. An existing value is never overwritten."""
    if value is None:
        value = Prompt.ask(f"Value for {tool_name}-{secret_name}", password=True, console=console)
    if not value or not value.strip():
        _fail("Secret value cannot be empty")

    try:
        with SqliteSecretStore(_settings(ctx).resolved_secrets_db_path) as secrets:
            stored = secrets.set_secret_once(secret_key(tool_name, secret_name), value.strip())
    except ToolshedError as e:
        _fail(e.message)

    if stored:
        console.print(f"[green]Stored {escape(secret_name)} for {escape(tool_name)}[/green]")
    else:
        console.print(
            f"[yellow]{escape(secret_name)} for {escape(tool_name)} is already set; "
            "clear it first to replace it[/yellow]"
        )


@secrets_app.command("clear")
def secrets_clear(
    ctx: typer.Context,
    tool_name: Annotated[str, typer.Argument(help="Tool the secret belongs to.")],
    secret_name: Annotated[str, typer.Argument(help="Secret name.")],
) -> None:
    """Delete one secret."""
    try:
        with SqliteSecretStore(_settings(ctx).resolved_secrets_db_path) as secrets:
            removed = secrets.delete_secret(secret_key(tool_name, secret_name))
    except ToolshedError as e:
        _fail(e.message)

    if removed:
        console.print(f"[green]Cleared {escape(secret_name)} for {escape(tool_name)}[/green]")
    else:
        console.print("[dim]Secret was not set.[/dim]")


@secrets_app.command("clear-all")
def secrets_clear_all(
    ctx: typer.Context,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Do not ask for confirmation."),
    ] = False,
) -> None:
    """Delete every stored secret."""
    if not yes and not Confirm.ask("Delete ALL stored secrets?", console=console, default=False):
        console.print("[dim]Aborted.[/dim]")
        return
    try:
        with SqliteSecretStore(_settings(ctx).resolved_secrets_db_path) as secrets:
            count = secrets.clear_all_secrets()
    except ToolshedError as e:
        _fail(e.message)
    console.print(f"[green]Cleared {count} secret(s)[/green]")


# =============================================================================
# Facts Subcommand Group
# =============================================================================

facts_app = typer.Typer(
    name="facts",
    help="Manage facts the agent can search.",
    no_args_is_help=True,
)
app.add_typer(facts_app, name="facts")


@facts_app.command("list")
def facts_list(ctx: typer.Context) -> None:
    """Show every remembered fact."""
    try:
        with ToolshedDB(_settings(ctx).db_path) as db:
            facts = db.get_all_facts()
    except ToolshedError as e:
        _fail(e.message)

    if not facts:
        console.print("[dim]No facts stored.[/dim]")
        return
    for fact in facts:
        console.print(f"  [cyan]{escape(fact.key)}[/cyan]: {escape(fact.value)}")


@facts_app.command("set")
def facts_set(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Fact name.")],
    value: Annotated[str, typer.Argument(help="Fact value.")],
) -> None:
    """Remember (or update) a fact."""
    try:
        with ToolshedDB(_settings(ctx).db_path) as db:
            written = db.upsert_facts({key: value})
    except ToolshedError as e:
        _fail(e.message)
    if not written:
        _fail("Fact key cannot be empty")
    console.print(f"[green]Remembered {escape(key)}[/green]")


@facts_app.command("clear")
def facts_clear(ctx: typer.Context) -> None:
    """Forget every fact."""
    try:
        with ToolshedDB(_settings(ctx).db_path) as db:
            count = db.clear_facts()
    except ToolshedError as e:
        _fail(e.message)
    console.print(f"[green]Cleared {count} fact(s)[/green]")


# =============================================================================
# Invocation, Logs and Chat
# =============================================================================


@app.command()
def invoke(
    ctx: typer.Context,
    tool_name: Annotated[str, typer.Argument(help="Tool name in the catalog.")],
    input_json: Annotated[
        Optional[str],
        typer.Option("--input", "-i", help="Tool input as a JSON object."),
    ] = None,
    prompt_secrets: Annotated[
        bool,
        typer.Option("--prompt-secrets", help="Ask for missing secrets instead of denying."),
    ] = False,
) -> None:
    """
    Run one tool through the secret and approval gates.

    Example:
        $ toolshed invoke add --input '{"a": 2, "b": 3}'
    """
    args = _parse_input(input_json)
    try:
        with _pipeline(_settings(ctx), prompt_secrets) as pipeline:
            result = pipeline.invoke(tool_name, args)
    except ToolshedError as e:
        _fail(e.message)

    if not result.ok:
        console.print(f"{_status_markup(result.status)} {escape(result.error or '')}")
        raise typer.Exit(code=1)
    print(json.dumps(result.output, indent=2, default=str))


@app.command()
def logs(
    ctx: typer.Context,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of records to show."),
    ] = 20,
    tool: Annotated[
        Optional[str],
        typer.Option("--tool", help="Only records for this tool."),
    ] = None,
) -> None:
    """Show the tool execution log, most recent first."""
    settings = _settings(ctx)
    if not settings.db_path.exists():
        console.print(f"[yellow]No database found at {escape(str(settings.db_path))}[/yellow]")
        return
    try:
        with ToolshedDB(settings.db_path) as db:
            records = db.list_executions(limit=limit, tool_name=tool)
    except ToolshedError as e:
        _fail(e.message)

    if not records:
        console.print("[dim]No executions recorded.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Log ID", style="cyan")
    table.add_column("Started")
    table.add_column("Tool")
    table.add_column("Status", width=8)
    table.add_column("Duration", justify="right")
    table.add_column("Error")
    for record in records:
        duration_ms = (record.finished_at - record.started_at).total_seconds() * 1000
        table.add_row(
            record.log_id or "-",
            record.started_at.isoformat()[:19],
            record.tool_name,
            _status_markup(record.status),
            f"{duration_ms:.0f}ms",
            escape(record.error or ""),
        )
    console.print(table)


@app.command()
def chat(
    ctx: typer.Context,
    message: Annotated[
        Optional[str],
        typer.Option("--message", "-m", help="Send one message and exit."),
    ] = None,
    prompt_secrets: Annotated[
        bool,
        typer.Option("--prompt-secrets", help="Ask for missing secrets instead of denying."),
    ] = False,
) -> None:
    """
    Chat with the agent. Type 'exit' to quit.

    Example:
        $ LLM_API_KEY=... toolshed chat
    """
    settings = _settings(ctx)
    if not settings.llm_api_key:
        _fail("LLM_API_KEY is not set")

    provider_config = ProviderConfig(
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
        model=settings.llm_model,
        timeout_seconds=settings.llm_timeout_seconds,
    )
    agent_config = AgentConfig(max_steps=settings.max_steps, history_limit=settings.history_limit)

    try:
        with _pipeline(settings, prompt_secrets) as pipeline, OpenAICompatibleProvider(
            provider_config
        ) as provider:
            extractor = LLMFactExtractor(provider) if settings.extract_facts else None
            agent = AgentOrchestrator(
                provider, pipeline.db, pipeline, agent_config, fact_extractor=extractor
            )
            if message is not None:
                console.print(agent.chat(message).reply)
                return

            console.print(f"[dim]Chatting with {escape(settings.llm_model)}. Type 'exit' to quit.[/dim]")
            while True:
                try:
                    text = Prompt.ask("[bold]you[/bold]", console=console)
                except EOFError:
                    break
                if text.strip().lower() in ("exit", "quit"):
                    break
                if not text.strip():
                    continue
                result = agent.chat(text)
                console.print(f"[bold]agent[/bold]: {escape(result.reply)}")
    except ToolshedError as e:
        _fail(e.message)


if __name__ == "__main__":
    app()
