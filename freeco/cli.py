"""freeco CLI — operator entry point for moderating the marketplace."""

import asyncio
import sys

import click
from rich.console import Console
from rich.table import Table

from freeco import __version__
from freeco.moderation.errors import ModerationError

console = Console()


def _fail(e: ModerationError) -> None:
    console.print(f"[red]{e.category}:[/] {e.message}")
    for key, value in e.details.items():
        console.print(f"  {key}: {value}")
    sys.exit(1)


def _run(coro):
    """Run *coro*, printing domain errors instead of a traceback."""
    try:
        return asyncio.run(coro)
    except ModerationError as e:
        _fail(e)


@click.group()
@click.version_option(version=__version__)
@click.option("--data-dir", envvar="FREECO_DATA_DIR", default=None, help="Data directory")
@click.option("--actor-id", default="cli-operator", help="Id recorded as moderated_by")
@click.option(
    "--actor-role",
    default="admin",
    type=click.Choice(["admin", "moderator", "user"]),
    help="Role the operator acts with",
)
@click.option("--log-level", envvar="FREECO_LOG_LEVEL", default="WARNING", help="Logging level")
@click.pass_context
def main(ctx: click.Context, data_dir: str | None, actor_id: str, actor_role: str, log_level: str):
    """freeco — classifieds marketplace moderation.

    Inspect moderation queues, apply single or bulk moderation actions,
    and manage the system configuration from the command line.
    """
    from freeco.auth.models import Actor
    from freeco.services import build_services
    from freeco.settings import configure_logging

    configure_logging(log_level)
    ctx.obj = {
        "services": build_services(data_dir),
        "actor": Actor(id=actor_id, role=actor_role),
    }


def _open_console(ctx: click.Context):
    from freeco.moderation.consoles import AdminConsole, ModeratorConsole

    services = ctx.obj["services"]
    actor = ctx.obj["actor"]
    try:
        if actor.role.value == "admin":
            return AdminConsole(services.engine, actor, config_store=services.config)
        return ModeratorConsole(services.engine, actor)
    except ModerationError as e:
        _fail(e)


# ── Stats ────────────────────────────────────────────────────────────


@main.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show entity counts per status."""
    services = ctx.obj["services"]
    counts = _run(services.queries.dashboard(ctx.obj["actor"]))

    for family in ("users", "listings", "interests"):
        table = Table(title=family.capitalize())
        table.add_column("Status", style="cyan")
        table.add_column("Count", justify="right", style="green")
        for status, n in counts[family].items():
            table.add_row(status, str(n))
        console.print(table)

    types = Table(title="Listings by type")
    types.add_column("Type", style="cyan")
    types.add_column("Count", justify="right", style="green")
    for listing_type, n in counts["listing_types"].items():
        types.add_row(listing_type, str(n))
    console.print(types)


# ── Queues ───────────────────────────────────────────────────────────


@main.command()
@click.argument("family")
@click.option("--status", "-s", default="pending", help="Status filter, or 'all'")
@click.option("--type", "listing_type", "-t", default=None, help="Listing type filter")
@click.option("--role", default=None, help="User role filter, or 'all'")
@click.option("--page", default=1, type=int)
@click.option("--limit", default=10, type=int)
@click.pass_context
def pending(
    ctx: click.Context, family: str, status: str, listing_type: str | None, role: str | None, page: int, limit: int
):
    """List entities of FAMILY (users, listings, interests) awaiting moderation."""
    services = ctx.obj["services"]
    result = _run(
        services.queries.list_entities(
            ctx.obj["actor"], family, status=status, listing_type=listing_type,
            page=page, limit=limit, role=role,
        )
    )

    if not result.items:
        console.print(f"[yellow]No {family} with status '{status}'.[/]")
        return

    table = Table(title=f"{family.capitalize()} — page {result.page}/{result.pages} ({result.total} total)")
    table.add_column("ID", style="dim")
    table.add_column("Status")
    table.add_column("Summary", style="cyan")
    table.add_column("Created")

    for entity in result.items:
        table.add_row(entity.id, entity.status.value, _summary(entity), entity.created_at[:19])

    console.print(table)


def _summary(entity) -> str:
    from freeco.entities.models import Listing, User

    if isinstance(entity, User):
        return f"{entity.display_name} <{entity.email}> ({entity.role.value})"
    if isinstance(entity, Listing):
        return f"[{entity.listing_type.value}] {entity.display_title[:50]}"
    return f"{entity.sender} → {entity.receiver} on {entity.listing}"


# ── Moderate ─────────────────────────────────────────────────────────


@main.command()
@click.argument("family")
@click.argument("entity_id")
@click.argument("action")
@click.option("--reason", "-r", default=None, help="Rejection reason")
@click.option("--role", default=None, help="New role for set_role")
@click.pass_context
def moderate(ctx: click.Context, family: str, entity_id: str, action: str, reason: str | None, role: str | None):
    """Apply ACTION to one entity of FAMILY."""
    mod = _open_console(ctx)
    result = _run(mod.moderate(family, entity_id, action, reason=reason, role=role))

    console.print(f"  [green]OK[/] {result.message}")
    if result.notifications_sent:
        console.print(f"  Notifications sent: {result.notifications_sent}")


@main.command()
@click.argument("family")
@click.argument("action")
@click.argument("entity_ids", nargs=-1, required=True)
@click.option("--reason", "-r", default=None, help="Rejection reason")
@click.option("--role", default=None, help="New role for set_role")
@click.pass_context
def bulk(ctx: click.Context, family: str, action: str, entity_ids: tuple, reason: str | None, role: str | None):
    """Apply ACTION to every id in ENTITY_IDS."""
    mod = _open_console(ctx)
    result = _run(mod.bulk(family, list(entity_ids), action, reason=reason, role=role))

    console.print(f"  [green]OK[/] {result.message} ({result.matched_count}/{result.requested_count} matched)")


# ── Config ───────────────────────────────────────────────────────────


@main.group()
def config():
    """Show or load the system configuration (admin only)."""


@config.command(name="show")
@click.pass_context
def show_config(ctx: click.Context):
    """Print the current system configuration."""
    from freeco.auth.models import Role
    from freeco.auth.permissions import require_role

    async def fetch():
        require_role(ctx.obj["actor"], Role.admin)
        return await ctx.obj["services"].config.get()

    current = _run(fetch())

    table = Table(title="System configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in current.model_dump().items():
        table.add_row(key, str(value))
    console.print(table)


@config.command(name="load")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def load_config(ctx: click.Context, path: str):
    """Replace the system configuration with the YAML file at PATH."""
    from freeco.config.system_config import load_system_config
    from freeco.moderation.consoles import AdminConsole

    services = ctx.obj["services"]

    async def apply():
        admin = AdminConsole(services.engine, ctx.obj["actor"], config_store=services.config)
        return await admin.replace_config(load_system_config(path))

    loaded = _run(apply())
    console.print(f"  [green]Loaded[/] configuration for {loaded.site_name} from {path}")


# ── Audit ────────────────────────────────────────────────────────────


@main.command()
@click.option("--actor", default=None, help="Filter by actor id")
@click.option("--action", default=None, help="Filter by action")
@click.option("--family", default=None, help="Filter by entity family")
@click.option("--limit", default=50, type=int)
@click.option("--format", "fmt", default="table", type=click.Choice(["table", "json", "csv"]))
@click.pass_context
def audit(ctx: click.Context, actor: str | None, action: str | None, family: str | None, limit: int, fmt: str):
    """Show the moderation audit trail (admin only)."""
    from freeco.auth.models import Role
    from freeco.auth.permissions import require_role
    from freeco.entities.models import parse_family

    log = ctx.obj["services"].audit

    async def filters():
        require_role(ctx.obj["actor"], Role.admin)
        return {
            "actor": actor,
            "action": action,
            "family": parse_family(family).value if family else None,
            "limit": limit,
        }

    flt = _run(filters())

    if fmt != "table":
        click.echo(log.export_events(fmt, **flt))
        return

    events = log.get_events(**flt)
    if not events:
        console.print("[yellow]No audit events recorded.[/]")
        return

    table = Table(title=f"Audit trail ({len(events)} events)")
    table.add_column("Time", style="dim")
    table.add_column("Actor", style="cyan")
    table.add_column("Action")
    table.add_column("Family")
    table.add_column("Matched", justify="right", style="green")
    table.add_column("Ids")
    for e in events:
        table.add_row(
            e.timestamp[:19], f"{e.actor} ({e.actor_role})", e.action, e.family,
            str(e.matched_count), ", ".join(e.entity_ids)[:40],
        )
    console.print(table)


if __name__ == "__main__":
    main()
