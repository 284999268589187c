"""
Reservation Engine CLI.

Command-line interface for common operations: schema creation, slot and
room previews, the stale pending sweep and health checks.
"""

import asyncio
import sys
import time
from datetime import date, datetime

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="reservations",
    help="Reservation Scheduling & Table Allocation CLI",
    add_completion=False,
)
console = Console()


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        console.print(f"[red]✗ Invalid date '{value}', expected YYYY-MM-DD[/red]")
        raise typer.Exit(1)


def _tenant_id(db, slug: str) -> int:
    from rest_api.services.domain import ReservationService
    from shared.exceptions import TenantNotFoundError

    try:
        return ReservationService(db).get_tenant_by_slug(slug).id
    except TenantNotFoundError:
        console.print(f"[red]✗ Unknown restaurant '{slug}'[/red]")
        raise typer.Exit(1)


# =============================================================================
# Database Commands
# =============================================================================

@app.command()
def db_init():
    """Create the reservation tables if they do not exist."""
    from rest_api.db import engine
    from rest_api.models import Base

    console.print("[blue]Creating tables...[/blue]")
    try:
        Base.metadata.create_all(bind=engine)
        console.print("[green]✓ Tables created/verified[/green]")
    except Exception as e:
        console.print(f"[red]✗ Table creation failed: {e}[/red]")
        raise typer.Exit(1)


# =============================================================================
# Reservation Commands
# =============================================================================

@app.command()
def slots(
    slug: str = typer.Argument(..., help="Restaurant slug"),
    day: str = typer.Option(None, "--date", "-d", help="Date (YYYY-MM-DD), defaults to today"),
):
    """Preview the slots the public booking form offers."""
    from rest_api.db import get_db_context
    from rest_api.services.domain import ReservationService

    target = _parse_date(day) if day else date.today()
    with get_db_context() as db:
        _tenant_id(db, slug)
        is_open, offered = ReservationService(db).get_public_slots(slug, target)

    if not is_open:
        console.print(f"[yellow]Online reservations are closed for '{slug}'[/yellow]")
        return
    if not offered:
        console.print(f"[yellow]No slots offered on {target.isoformat()}[/yellow]")
        return

    table = Table(title=f"Slots {slug} {target.isoformat()}")
    table.add_column("#", style="cyan")
    table.add_column("Time", style="green")
    for index, slot in enumerate(offered, start=1):
        table.add_row(str(index), slot)
    console.print(table)


@app.command()
def occupancy(
    slug: str = typer.Argument(..., help="Restaurant slug"),
    day: str = typer.Option(None, "--date", "-d", help="Date (YYYY-MM-DD), defaults to today"),
):
    """Show the room view for a date."""
    from rest_api.db import get_db_context
    from rest_api.services.domain import ReservationService

    target = _parse_date(day) if day else date.today()
    with get_db_context() as db:
        tenant_id = _tenant_id(db, slug)
        service = ReservationService(db)
        room = service.get_occupancy(tenant_id, target)
        tables = service.list_tables(tenant_id)

    table = Table(title=f"Room {slug} {target.isoformat()} ({room.occupancy_percent}%)")
    table.add_column("Table", style="cyan")
    table.add_column("Seats", style="green")
    table.add_column("Reservation", style="yellow")
    for dining_table in tables:
        detail = room.details.get(dining_table.id)
        label = (
            f"{detail.time} {detail.customer_name} ({detail.guests})" if detail else "-"
        )
        name = dining_table.name if dining_table.is_active else f"{dining_table.name} (off)"
        table.add_row(name, str(dining_table.seats), label)

    console.print(table)
    console.print(
        f"Seats: {room.occupied_seats}/{room.total_capacity} | "
        f"High chairs: {room.high_chairs_used}/{room.high_chairs_available}"
    )


@app.command()
def expire_pending(
    slug: str = typer.Option(None, help="Only this restaurant"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Count without rejecting"),
):
    """Reject pending reservations whose slot already passed."""
    from rest_api.db import get_db_context
    from rest_api.services.domain import ReservationService
    from rest_api.services.reservation_events import announce_reservation_change
    from shared.events import close_redis_pool

    with get_db_context() as db:
        tenant_id = _tenant_id(db, slug) if slug else None
        service = ReservationService(db)
        if dry_run:
            from rest_api.models import Reservation
            from sqlalchemy import func, select
            from shared.constants import ReservationStatus

            query = select(func.count()).select_from(Reservation).where(
                Reservation.status == ReservationStatus.PENDING,
                Reservation.reservation_date <= date.today(),
            )
            if tenant_id is not None:
                query = query.where(Reservation.tenant_id == tenant_id)
            count = db.scalar(query) or 0
            console.print(f"[yellow]Pending up to today: {count} (dry run)[/yellow]")
            return
        changes = service.expire_stale_pending(tenant_id=tenant_id)

    async def _announce():
        try:
            for change in changes:
                await announce_reservation_change(change.reservation, change.event_type)
        finally:
            await close_redis_pool()

    if changes:
        asyncio.run(_announce())
    console.print(f"[green]✓ Expired {len(changes)} pending reservation(s)[/green]")


# =============================================================================
# Health Commands
# =============================================================================

@app.command()
def health():
    """Check system health."""
    import httpx
    from shared.settings import settings

    async def _health():
        services = [
            ("REST API", f"http://localhost:{settings.rest_api_port}/api/health"),
            ("WS Gateway", f"http://localhost:{settings.ws_gateway_port}/ws/health"),
        ]

        table = Table(title="Service Health")
        table.add_column("Service", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Response Time", style="yellow")

        async with httpx.AsyncClient(timeout=5.0) as client:
            for name, url in services:
                try:
                    start = time.time()
                    response = await client.get(url)
                    elapsed = (time.time() - start) * 1000

                    if response.status_code == 200:
                        table.add_row(name, "✓ Healthy", f"{elapsed:.0f}ms")
                    else:
                        table.add_row(name, f"✗ Status {response.status_code}", f"{elapsed:.0f}ms")
                except Exception as e:
                    table.add_row(name, f"✗ {type(e).__name__}", "-")

        from shared.events import close_redis_pool, get_redis_pool
        try:
            start = time.time()
            redis = await get_redis_pool()
            await redis.ping()
            elapsed = (time.time() - start) * 1000
            table.add_row("Redis", "✓ Healthy", f"{elapsed:.0f}ms")
        except Exception as e:
            table.add_row("Redis", f"✗ {type(e).__name__}", "-")
        finally:
            await close_redis_pool()

        console.print(table)

    asyncio.run(_health())


@app.command()
def version():
    """Show version information."""
    table = Table(title="Reservation Engine Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("API", "0.1.0")
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


if __name__ == "__main__":
    app()
