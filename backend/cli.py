"""
MenuPro CLI.

Command-line interface for schema setup, token issuance and maintenance.
"""

import sys
import time
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).parent))

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="menupro",
    help="MenuPro order service CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Database Commands
# =============================================================================

@app.command()
def init_db():
    """Create all tables that do not exist yet."""
    from shared.infrastructure.db import engine
    from order_api.models import Base

    console.print(f"[blue]Creating schema on: {engine.url.render_as_string(hide_password=True)}[/blue]")
    Base.metadata.create_all(bind=engine)

    table = Table(title="Tables")
    table.add_column("Name", style="cyan")
    for name in sorted(Base.metadata.tables):
        table.add_row(name)
    console.print(table)
    console.print("[green]✓ Schema ready[/green]")


# =============================================================================
# Auth Commands
# =============================================================================

@app.command()
def issue_token(
    user_id: str = typer.Argument(None, help="User to issue the token for"),
    restaurant: str = typer.Option(None, "--restaurant", "-r", help="Restaurant scope"),
    guest: bool = typer.Option(False, "--guest", help="Issue a guest CUSTOMER token for --restaurant"),
):
    """Issue an access token."""
    from shared.infrastructure.db import get_db_context
    from shared.utils.exceptions import AppException
    from order_api.services.domain import AuthService

    if guest and not restaurant:
        console.print("[red]--guest requires --restaurant[/red]")
        raise typer.Exit(1)
    if not guest and not user_id:
        console.print("[red]USER_ID is required unless --guest is given[/red]")
        raise typer.Exit(1)

    with get_db_context() as db:
        service = AuthService(db)
        try:
            if guest:
                token = service.issue_guest_token(restaurant)
            else:
                token = service.issue_token(user_id, restaurant)
        except AppException as e:
            console.print(f"[red]✗ {e.detail}[/red]")
            raise typer.Exit(1)

    console.print(token)


# =============================================================================
# Maintenance Commands
# =============================================================================

@app.command()
def cleanup_idempotency(
    ttl: int = typer.Option(None, help="Key TTL in seconds (defaults to IDEMPOTENCY_KEY_TTL_SECONDS)"),
):
    """Release request IDs of orders older than the idempotency TTL."""
    from shared.infrastructure.db import get_db_context
    from order_api.services.idempotency import cleanup_expired_keys

    with get_db_context() as db:
        cleared = cleanup_expired_keys(db, ttl_seconds=ttl)

    console.print(f"[green]✓ Cleared request IDs on {cleared} orders[/green]")


@app.command()
def redis_ping():
    """Check connectivity to the Redis store."""
    import redis

    from shared.infrastructure.redis import get_redis_sync_client

    client = get_redis_sync_client()
    try:
        start = time.time()
        client.ping()
        elapsed = (time.time() - start) * 1000
        info = client.info()
    except redis.RedisError as e:
        console.print(f"[red]✗ Redis unreachable: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Redis")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Latency", f"{elapsed:.0f}ms")
    table.add_row("Version", str(info.get("redis_version", "?")))
    table.add_row("Connected Clients", str(info.get("connected_clients", "?")))
    table.add_row("Used Memory", str(info.get("used_memory_human", "?")))
    console.print(table)


if __name__ == "__main__":
    app()
