"""CLI entry point for Rulebook Server."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="rulebook",
    help="Rulebook Server CLI - Inspect rules and maintain the search index",
    add_completion=False,
)

console = Console()


def run_async(coro):
    """Helper to run async code from sync CLI."""
    return asyncio.run(coro)


def _display_rule(view) -> None:
    console.print(f"\n[bold]{view.key}[/bold] {view.name or ''}")

    table = Table(title="Rule")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Organization", view.organization_uuid)
    table.add_row("Language", view.language or "-")
    table.add_row("Type", view.rule_type or "-")
    table.add_row("Severity", view.severity or "-")
    table.add_row("Status", view.status)
    table.add_row("Template", "yes" if view.is_template else "no")
    if view.template_key:
        table.add_row("Derived from", str(view.template_key))
    table.add_row("Tags", ", ".join(view.tags) or "-")

    remediation = view.remediation
    overridden = " (overridden)" if view.is_remediation_overridden else ""
    table.add_row("Remediation", f"{remediation.function_value or '-'}{overridden}")
    if remediation.gap_multiplier_value:
        table.add_row("  Gap multiplier", remediation.gap_multiplier_value)
    if remediation.base_effort_value:
        table.add_row("  Base effort", remediation.base_effort_value)
    if view.note_data:
        table.add_row("Note", f"{view.note_data} ({view.note_user_login or 'unknown'})")
    console.print(table)

    if view.params:
        params_table = Table(title="Parameters")
        params_table.add_column("Name", style="cyan")
        params_table.add_column("Type")
        params_table.add_column("Default", style="green")
        for param in view.params:
            params_table.add_row(param.name, param.param_type, param.default_value or "")
        console.print(params_table)


@app.command()
def show(
    key: str = typer.Argument(..., help="Rule key, e.g. java:S001"),
    organization: Optional[str] = typer.Option(
        None,
        "--organization", "-o",
        help="Organization (defaults to DEFAULT_ORGANIZATION)",
    ),
    actives: bool = typer.Option(False, "--actives", "-a", help="List the quality profiles activating the rule"),
):
    """Show a rule merged with the metadata of an organization."""
    from rulebook.api.exceptions import NotFoundError
    from rulebook.config import get_settings
    from rulebook.database import async_session_maker
    from rulebook.models.rule import RuleKey
    from rulebook.services.rule_resolution import RuleResolutionService

    try:
        rule_key = RuleKey.parse(key)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    organization_uuid = organization or get_settings().default_organization

    async def _show():
        async with async_session_maker() as session:
            service = RuleResolutionService(session)
            try:
                result = await service.show_rule(rule_key, organization_uuid, include_actives=actives)
            except NotFoundError as e:
                console.print(f"[red]{e.message}[/red]")
                raise typer.Exit(1)

            _display_rule(result.rule)

            if result.actives is not None:
                table = Table(title=f"Active in {len(result.actives)} profile(s)")
                table.add_column("Profile", style="cyan")
                table.add_column("Severity")
                table.add_column("Parameters", style="green")
                for active in result.actives:
                    params = ", ".join(f"{k}={v}" for k, v in sorted(active.params.items()) if v is not None)
                    table.add_row(active.profile_name, active.severity or "-", params or "-")
                console.print(table)

    run_async(_show())


@app.command()
def reindex():
    """Rebuild the rule and active rule search indexes from the database.

    Requires SEARCH_REDIS_URL so the rebuilt index is the one the server reads.
    """
    from rulebook.database import async_session_maker
    from rulebook.search import close_search_index, get_search_index
    from rulebook.services.rule_indexer import ActiveRuleIndexer, RuleIndexer

    async def _reindex():
        index = get_search_index()
        if not index.is_shared:
            console.print(
                "[red]No shared search index configured.[/red] "
                "Set SEARCH_REDIS_URL to the Redis instance used by the server."
            )
            raise typer.Exit(1)

        try:
            async with async_session_maker() as session:
                rules = await RuleIndexer(session, index).index_all()
                active_rules = await ActiveRuleIndexer(session, index).index_all()
        finally:
            await close_search_index()

        table = Table(title="Reindex")
        table.add_column("Index", style="cyan")
        table.add_column("Documents", style="green", justify="right")
        table.add_row("Rules", str(rules))
        table.add_row("Active rules", str(active_rules))
        console.print(table)

    run_async(_reindex())


@app.command("init-db")
def init_database():
    """Create missing database tables."""
    from rulebook.database import close_db, init_db

    async def _init():
        try:
            await init_db()
        finally:
            await close_db()

    run_async(_init())
    console.print("[green]✓ Database initialized[/green]")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload"),
):
    """Start the API server."""
    import uvicorn

    from rulebook.config import get_settings

    console.print("[green]Starting Rulebook Server API...[/green]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    console.print(f"  Docs: http://localhost:{port}{get_settings().api_prefix}/docs")

    uvicorn.run(
        "rulebook.api.main:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
