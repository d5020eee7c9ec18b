"""CLI commands for clash review and resolution.

Commands:
    bookops clashes   — print the clash report for a caller's builds
    bookops resolve   — resolve one account's clash, prompting for the winner
    bookops create-key — issue an API key for a caller

The caller identity is given explicitly (or via BOOKOPS_USER_ID,
BOOKOPS_ROLE, BOOKOPS_REGION) and turned into the same AuthContext the REST
API builds from a token.

Usage:
    bookops clashes --user-id ana --role SLM --region EMEA
    bookops resolve 001ABC --rationale "EMEA holds the renewal" --user-id ana --role SLM --region EMEA
"""

from __future__ import annotations

import asyncio
import uuid

import questionary
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from bookops.clash import service
from bookops.clash.errors import ClashResolutionError
from bookops.clash.resolver import resolve_clash
from bookops.clash.types import Clash, Severity
from bookops.db.models import UserRole
from bookops.db.session import engine
from bookops.security.api_key import create_api_key
from bookops.server.auth import AuthContext

console = Console()

_SEVERITY_STYLE = {
    Severity.HIGH: "bold red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "dim",
}

_USER_OPTION = typer.Option(..., "--user-id", envvar="BOOKOPS_USER_ID", help="Caller id.")
_ROLE_OPTION = typer.Option(
    ..., "--role", envvar="BOOKOPS_ROLE", help="Caller role: FLM, SLM or REVOPS."
)
_REGION_OPTION = typer.Option(
    None, "--region", envvar="BOOKOPS_REGION", help="Caller's home region."
)


def _run(coro):
    """Run *coro* on a fresh event loop, releasing pooled connections afterwards.

    Each command step gets its own loop so questionary prompts can run in
    between; pooled connections are bound to the loop that opened them.
    """

    async def runner():
        try:
            return await coro
        finally:
            await engine.dispose()

    return asyncio.run(runner())


def _auth(user_id: str, role: str, region: str | None) -> AuthContext:
    try:
        parsed = UserRole(role.upper())
    except ValueError:
        raise typer.BadParameter(f"Unknown role '{role}'", param_hint="--role")
    return AuthContext(user_id=user_id, role=parsed, region=region)


def _build_id(value: str | None) -> uuid.UUID | None:
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        raise typer.BadParameter(f"'{value}' is not a build id", param_hint="--build")


def _owner_label(owner_id: str | None, owner_name: str | None) -> str:
    if not owner_id:
        return "[dim]unassigned[/dim]"
    return f"{owner_name or owner_id} ({owner_id})"


def render_clash_table(clashes: list[Clash]) -> Table:
    """Build a Rich table with one row per clash and one line per member build."""
    table = Table(title="Account clashes", show_lines=True)
    table.add_column("Severity")
    table.add_column("Account")
    table.add_column("ARR", justify="right")
    table.add_column("Assignments")
    table.add_column("Conflict")

    for clash in clashes:
        lines = []
        for view in clash.builds:
            marker = "NEW" if view.has_new_owner else "CURRENT"
            lines.append(
                f"{view.build_name}: {marker} "
                f"{_owner_label(view.effective_owner_id, view.effective_owner_name)}"
            )
        style = _SEVERITY_STYLE[clash.severity]
        table.add_row(
            f"[{style}]{clash.severity.value.upper()}[/{style}]",
            f"{clash.account_name}\n[dim]{clash.sfdc_account_id}[/dim]",
            f"${clash.arr:,.0f}",
            "\n".join(lines),
            ", ".join(clash.conflict_types),
        )
    return table


def clashes(
    user_id: str = _USER_OPTION,
    role: str = _ROLE_OPTION,
    region: str | None = _REGION_OPTION,
    build: str | None = typer.Option(
        None, "--build", help="Current build id; listed first inside each clash."
    ),
) -> None:
    """Detect and print ownership clashes across your visible builds."""
    auth = _auth(user_id, role, region)
    current_build_id = _build_id(build)
    report = _run(service.detect_for_caller(auth, current_build_id=current_build_id))

    if report.build_count < 2:
        console.print(Panel(
            "Clash detection needs at least 2 builds to compare.",
            title="BookOps",
            border_style="yellow",
        ))
        return

    for omitted in report.omitted_builds:
        console.print(
            f"[yellow]Warning: build {omitted['build_name']} was skipped "
            f"({omitted['error']})[/yellow]"
        )

    if not report.clashes:
        console.print(Panel(
            f"[green]All account assignments are consistent across "
            f"{report.build_count} builds.[/green]",
            title="BookOps",
            border_style="green",
        ))
        return

    console.print(render_clash_table(report.clashes))
    summary = report.summary
    console.print(
        f"\n[bold]{summary['total']}[/bold] clashes · "
        f"[red]{summary['high_severity']} high severity[/red] · "
        f"{summary['resolved']} previously resolved"
    )


def resolve(
    sfdc_account_id: str = typer.Argument(..., help="Account whose clash to resolve."),
    rationale: str | None = typer.Option(
        None, "--rationale", help="Why this owner wins. Prompted for when omitted."
    ),
    target_build: str | None = typer.Option(
        None, "--build", help="Build whose assignment wins."
    ),
    owner_id: str | None = typer.Option(None, "--owner-id", help="Custom owner id."),
    owner_name: str | None = typer.Option(None, "--owner-name", help="Custom owner name."),
    user_id: str = _USER_OPTION,
    role: str = _ROLE_OPTION,
    region: str | None = _REGION_OPTION,
) -> None:
    """Resolve one account's clash across every build that holds it."""
    auth = _auth(user_id, role, region)
    target_build_id = _build_id(target_build)

    try:
        clash = _run(service.find_clash(auth, sfdc_account_id))
    except ClashResolutionError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    console.print(render_clash_table([clash]))

    if target_build_id is None and not owner_id:
        choices = [
            questionary.Choice(
                title=f"{view.build_name} — {view.effective_owner_name or view.effective_owner_id}",
                value=str(view.build_id),
            )
            for view in clash.builds
            if view.effective_owner_id
        ]
        picked = questionary.select("Which assignment wins?", choices=choices).ask()
        if picked is None:
            console.print("[yellow]Resolution cancelled.[/yellow]")
            raise typer.Exit(code=1)
        target_build_id = uuid.UUID(picked)

    if not rationale:
        rationale = questionary.text("Rationale for this resolution:").ask()
        if rationale is None:
            console.print("[yellow]Resolution cancelled.[/yellow]")
            raise typer.Exit(code=1)

    try:
        result = _run(
            resolve_clash(
                clash,
                rationale,
                auth,
                target_build_id=target_build_id,
                custom_owner_id=owner_id,
                custom_owner_name=owner_name,
            )
        )
    except ClashResolutionError as exc:
        console.print(f"[red]Resolution failed: {exc}[/red]")
        raise typer.Exit(code=1)

    console.print(Panel(
        f"[green]Resolved {clash.account_name} across "
        f"{len(result['builds_updated'])} builds → "
        f"{_owner_label(result['owner_id'], result['owner_name'])}[/green]",
        title="BookOps",
        border_style="green",
    ))


def create_key(
    user_id: str = _USER_OPTION,
    role: str = _ROLE_OPTION,
    region: str | None = _REGION_OPTION,
) -> None:
    """Issue an API key for a caller. The raw key is shown once."""
    auth = _auth(user_id, role, region)
    raw_key, key_id = _run(create_api_key(auth.user_id, auth.role, auth.region))
    console.print(Panel(
        f"[bold]{raw_key}[/bold]\n\n[dim]Key id {key_id}. Store it now — it cannot be shown again.[/dim]",
        title="New API key",
        border_style="blue",
    ))
