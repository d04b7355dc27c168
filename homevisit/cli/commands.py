"""CLI commands for HomeVisit."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from homevisit.config import get_settings

app = typer.Typer(
    name="homevisit",
    help="Home-visit appointment feasibility and doctor assignment",
    add_completion=False,
)
console = Console()


def _settings_for(backend: Optional[str], available_only: bool = False):
    settings = get_settings()
    if available_only:
        settings = settings.model_copy(update={"ranking_available_only": True})
    if backend:
        if backend not in ("osrm", "haversine"):
            console.print(f"[red]Invalid backend: {backend}. Use osrm or haversine[/red]")
            raise typer.Exit(1)
        settings = settings.model_copy(update={"travel_backend": backend})
    return settings


def _load_roster(roster: Path):
    from homevisit.scheduling.repository import InMemoryScheduleRepository

    if not roster.exists():
        console.print(f"[red]Roster file not found: {roster}[/red]")
        raise typer.Exit(1)
    try:
        return InMemoryScheduleRepository.from_json_file(roster)
    except ValueError as e:
        console.print(f"[red]Invalid roster file {roster}: {e}[/red]")
        raise typer.Exit(1)


def _build_services(roster: Path, backend: Optional[str], available_only: bool = False):
    """Ranker and booking service over a roster loaded into memory."""
    from homevisit.scheduling.booking import BookingService
    from homevisit.scheduling.feasibility import FeasibilityEngine
    from homevisit.scheduling.locations import LocationResolver
    from homevisit.scheduling.ranker import DoctorRanker
    from homevisit.scheduling.travel import create_travel_oracle

    settings = _settings_for(backend, available_only)
    repository = _load_roster(roster)
    oracle = create_travel_oracle(settings)
    engine = FeasibilityEngine(oracle, buffer_minutes=settings.buffer_minutes)
    resolver = LocationResolver.from_settings(repository, settings)

    ranker = DoctorRanker(
        repository,
        engine,
        resolver,
        default_duration_minutes=settings.default_duration_minutes,
        concurrency=settings.ranking_concurrency,
        memoize_travel=settings.travel_cache_enabled,
        available_only=settings.ranking_available_only,
    )
    booking = BookingService(
        repository,
        engine,
        resolver,
        default_duration_minutes=settings.default_duration_minutes,
    )
    return ranker, booking, oracle


@app.command()
def travel(
    origin_lat: float = typer.Argument(..., help="Origin latitude"),
    origin_lng: float = typer.Argument(..., help="Origin longitude"),
    dest_lat: float = typer.Argument(..., help="Destination latitude"),
    dest_lng: float = typer.Argument(..., help="Destination longitude"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="osrm or haversine"),
):
    """Estimate driving minutes between two coordinates."""
    from homevisit.scheduling.travel import create_travel_oracle

    settings = _settings_for(backend)

    async def _run() -> int:
        oracle = create_travel_oracle(settings)
        try:
            return await oracle.estimate_travel_minutes(origin_lat, origin_lng, dest_lat, dest_lng)
        finally:
            await oracle.aclose()

    minutes = asyncio.run(_run())
    console.print(
        f"[bold]{minutes}[/bold] min ({settings.travel_backend}) "
        f"from ({origin_lat}, {origin_lng}) to ({dest_lat}, {dest_lng})"
    )


@app.command("find-doctors")
def find_doctors(
    roster: Path = typer.Argument(..., help="JSON roster with doctors, patients and appointments"),
    patient_id: str = typer.Argument(..., help="Patient to visit"),
    requested_time: str = typer.Argument(..., help="Start time, HH:MM"),
    duration: Optional[int] = typer.Option(None, "--duration", "-d", help="Visit minutes"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="osrm or haversine"),
    available_only: bool = typer.Option(
        False, "--available-only", help="Skip doctors whose status is not Available"
    ),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Rank doctors who can take a visit."""
    from homevisit.scheduling.errors import SchedulingError

    ranker, _, oracle = _build_services(roster, backend, available_only)

    async def _run():
        try:
            return await ranker.find_candidates(patient_id, requested_time, duration)
        finally:
            await oracle.aclose()

    try:
        candidates = asyncio.run(_run())
    except SchedulingError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if output_json:
        console.print_json(data=[c.model_dump() for c in candidates])
        return

    if not candidates:
        console.print(f"[yellow]No doctor can visit {patient_id} at {requested_time}[/yellow]")
        return

    table = Table(title=f"Doctors for {patient_id} at {requested_time}")
    table.add_column("Rank", justify="right")
    table.add_column("Doctor")
    table.add_column("Name")
    table.add_column("Travel (min)", justify="right")
    for i, c in enumerate(candidates, 1):
        table.add_row(str(i), c.doctor_id, c.doctor_name or "", str(c.travel_minutes))
    console.print(table)


@app.command()
def check(
    roster: Path = typer.Argument(..., help="JSON roster with doctors, patients and appointments"),
    doctor_id: str = typer.Argument(..., help="Doctor to check"),
    patient_id: str = typer.Argument(..., help="Patient to visit"),
    requested_time: str = typer.Argument(..., help="Start time, HH:MM"),
    duration: Optional[int] = typer.Option(None, "--duration", "-d", help="Visit minutes"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="osrm or haversine"),
):
    """Check whether a doctor can take a visit, without booking it."""
    from homevisit.scheduling.errors import SchedulingError

    _, booking, oracle = _build_services(roster, backend)

    async def _run():
        try:
            return await booking.check_conflict(doctor_id, patient_id, requested_time, duration)
        finally:
            await oracle.aclose()

    try:
        result = asyncio.run(_run())
    except SchedulingError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if result.available:
        console.print(Panel(f"{doctor_id} can visit {patient_id} at {requested_time}",
                            title="Available", border_style="green"))
        return

    body = f"[bold]Reason:[/bold] {result.reason_code.value}\n{result.reason}"
    if result.shortfall_minutes is not None:
        body += f"\n[bold]Short by:[/bold] {result.shortfall_minutes} min"
    console.print(Panel(body, title="Not available", border_style="red"))
    raise typer.Exit(2)


@app.command()
def events(
    log_type: str = typer.Argument("booking", help="travel or booking"),
    log_dir: Optional[Path] = typer.Option(None, "--dir", help="Event log directory"),
):
    """Summarize the scheduling event log."""
    from homevisit.observability import SchedulingEventLogger

    if log_type not in ("travel", "booking"):
        console.print(f"[red]Invalid log type: {log_type}. Use travel or booking[/red]")
        raise typer.Exit(1)

    event_logger = SchedulingEventLogger(
        log_dir=log_dir or get_settings().event_log_dir,
        enabled=False,
    )
    stats = event_logger.get_stats(log_type)
    if not stats.get("total"):
        console.print(f"[yellow]No {log_type} events recorded[/yellow]")
        return

    table = Table(title=f"{log_type.title()} events")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for key, value in stats.items():
        if isinstance(value, float):
            value = f"{value:.2f}"
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Host to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind"),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload"),
):
    """Start the REST API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    console.print(f"Starting HomeVisit API server on {host}:{port}")
    uvicorn.run(
        "homevisit.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command()
def version():
    """Show version information."""
    from homevisit import __version__

    console.print(f"HomeVisit v{__version__}")
