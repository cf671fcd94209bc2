"""Command-line interface using Typer."""

from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from studio_ledger import __version__
from studio_ledger.logging import setup_logging

setup_logging("cli")

app = typer.Typer(
    name="studio-ledger",
    help="Studio Ledger - coin balances and metered video generation",
    add_completion=False,
)

console = Console()

STATUS_STYLES = {
    "pending": "dim",
    "draft": "dim",
    "reserved": "yellow",
    "submitted": "cyan",
    "generating": "blue",
    "done": "green",
    "failed": "red",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Studio Ledger v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Studio Ledger - manage coins and watch generation jobs."""
    pass


# =============================================================================
# BALANCE COMMANDS
# =============================================================================


@app.command()
def balance(
    user_id: str = typer.Argument(..., help="User ID"),
) -> None:
    """Show a user's coin balance."""
    from studio_ledger.db.session import get_session_context
    from studio_ledger.services.ledger import get_balance

    with get_session_context() as session:
        snapshot = get_balance(session, user_id)

    console.print(Panel.fit(
        f"[cyan]Balance:[/cyan] {snapshot.balance}\n"
        f"[cyan]Reserved:[/cyan] {snapshot.reserved}\n"
        f"[cyan]Available:[/cyan] [bold]{snapshot.available}[/bold]\n"
        f"[cyan]Purchased:[/cyan] {snapshot.total_purchased}\n"
        f"[cyan]Consumed:[/cyan] {snapshot.total_consumed}",
        title=f"Coins of {user_id}",
        border_style="blue",
    ))


@app.command()
def grant(
    user_id: str = typer.Argument(..., help="User ID"),
    amount: int = typer.Argument(..., help="Coins to grant"),
    reason: Optional[str] = typer.Option(None, "--reason", "-r", help="Reason for the grant"),
) -> None:
    """Grant bonus coins to a user."""
    from studio_ledger.config import settings
    from studio_ledger.db.session import get_session_context
    from studio_ledger.domain.enums import TransactionType
    from studio_ledger.services.ledger import add_coins

    if not 1 <= amount <= settings.max_grant_amount:
        console.print(
            f"[bold red]Amount must be between 1 and {settings.max_grant_amount}[/bold red]"
        )
        raise typer.Exit(code=1)

    with get_session_context() as session:
        snapshot = add_coins(
            session,
            user_id,
            amount,
            TransactionType.BONUS,
            metadata={"type": "cli_grant", "reason": reason},
        )

    console.print(f"[bold green]✓ Granted {amount} coins to {user_id}[/bold green]")
    console.print(f"Balance: {snapshot.balance} (available {snapshot.available})")


# =============================================================================
# PRICING COMMANDS
# =============================================================================


@app.command()
def pricing() -> None:
    """List per-second generation prices."""
    from studio_ledger.config import settings
    from studio_ledger.services.pricing import MODEL_PRICING, segment_cost

    table = Table(title=f"Generation Pricing (markup x{settings.price_markup})")
    table.add_column("Model", style="cyan")
    table.add_column("Resolution")
    table.add_column("Cents/sec", justify="right")
    table.add_column(f"Coins/{settings.default_segment_duration}s", justify="right")

    for model, prices in MODEL_PRICING.items():
        for resolution, cents in prices.items():
            table.add_row(
                model,
                resolution,
                str(cents),
                str(segment_cost(model, resolution, settings.default_segment_duration)),
            )

    console.print(table)


@app.command()
def features() -> None:
    """List AI feature prices."""
    from studio_ledger.db.session import get_session_context
    from studio_ledger.services.features import list_feature_prices

    with get_session_context() as session:
        prices = list_feature_prices(session)

    table = Table(title="AI Feature Pricing")
    table.add_column("Key", style="cyan")
    table.add_column("Label")
    table.add_column("Coins", justify="right")
    table.add_column("Description", style="dim")

    for price in prices:
        table.add_row(price.key, price.label, str(price.cost_coins), price.description)

    console.print(table)


@app.command()
def estimate(
    model: str = typer.Argument(..., help="Model ID (e.g. seedance_2_0)"),
    resolution: str = typer.Argument(..., help="Resolution (e.g. 720p)"),
    durations: list[int] = typer.Argument(..., help="Segment durations in seconds"),
) -> None:
    """Estimate the coin cost of a batch of segments."""
    from studio_ledger.services.pricing import allocate_costs, estimate_cost, is_purchasable

    if not is_purchasable(model, resolution):
        console.print(f"[bold red]No price for {model} at {resolution}[/bold red]")
        raise typer.Exit(code=1)

    try:
        shares = allocate_costs(list(durations), model, resolution)
        total = estimate_cost(durations, model, resolution)
    except ValueError as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(code=1) from e

    table = Table(title=f"{model} {resolution}")
    table.add_column("#", justify="right")
    table.add_column("Seconds", justify="right")
    table.add_column("Coins", justify="right", style="green")
    for index, (duration, share) in enumerate(zip(durations, shares)):
        table.add_row(str(index), str(duration), str(share))
    console.print(table)

    console.print(f"[bold]Total: {total} coins for {sum(durations)}s[/bold]")


# =============================================================================
# JOB COMMANDS
# =============================================================================


def _segments_table(items: list[Any]) -> Table:
    table = Table(title="Segments")
    table.add_column("#", justify="right")
    table.add_column("Status")
    table.add_column("Coins", justify="right")
    table.add_column("Video / Error", overflow="fold")

    for item in items:
        item_status = item["status"]
        style = STATUS_STYLES.get(item_status, "")
        coins = item.get("token_cost") or item.get("reserved_cost") or ""
        detail = item.get("video_url") or item.get("error_message") or ""
        table.add_row(
            str(item.get("segment_index", "")),
            f"[{style}]{item_status}[/{style}]" if style else item_status,
            str(coins),
            detail,
        )
    return table


@app.command()
def watch(
    script_id: str = typer.Argument(..., help="Script UUID"),
    user_id: str = typer.Option(..., "--user", "-u", help="Owner of the script"),
    episode: Optional[int] = typer.Option(None, "--episode", "-e", help="Episode number"),
    api_url: str = typer.Option(
        "http://localhost:8000", "--api-url", help="Studio Ledger API base URL"
    ),
    interval: Optional[float] = typer.Option(
        None, "--interval", "-i", help="Seconds between polls"
    ),
) -> None:
    """Poll segment status until every segment is done or failed."""
    import httpx

    from studio_ledger.services.poller import JobStatusPoller, PollStopReason
    from studio_ledger.utils.async_utils import run_async

    params: dict[str, Any] = {"script_id": script_id}
    if episode is not None:
        params["episode_num"] = episode

    async def run() -> Any:
        async with httpx.AsyncClient(
            base_url=api_url, headers={"X-User-Id": user_id}, timeout=30.0
        ) as client:

            async def fetch() -> list[Any]:
                response = await client.get("/api/v1/video/status", params=params)
                response.raise_for_status()
                return response.json()["segments"]

            poller = JobStatusPoller(
                fetch,
                interval=interval,
                on_update=lambda items: console.print(_segments_table(items)),
            )
            try:
                return await poller.run()
            finally:
                poller.cancel()

    try:
        result = run_async(run())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped watching[/yellow]")
        raise typer.Exit(code=130)

    if result.reason == PollStopReason.ALL_TERMINAL:
        failed = sum(1 for item in result.items if item["status"] == "failed")
        if failed:
            console.print(f"[bold yellow]Finished with {failed} failed segment(s)[/bold yellow]")
        else:
            console.print("[bold green]✓ All segments done[/bold green]")
    else:
        console.print(f"[bold yellow]Stopped: {result.reason}[/bold yellow]")
        raise typer.Exit(code=1)


@app.command()
def sweep() -> None:
    """Release reservations of jobs stuck at the provider."""
    from studio_ledger.config import settings
    from studio_ledger.db.session import get_session_context
    from studio_ledger.services.generation import sweep_stale_jobs

    if settings.stale_job_timeout_minutes <= 0:
        console.print("[yellow]Stale job sweep is disabled (STALE_JOB_TIMEOUT_MINUTES=0)[/yellow]")
        return

    with get_session_context() as session:
        released = sweep_stale_jobs(session)

    console.print(f"[bold green]✓ Released {released} stale job(s)[/bold green]")


@app.command()
def health() -> None:
    """Check the health of all services."""
    import httpx

    from studio_ledger.config import settings

    url = f"http://{settings.api_host}:{settings.api_port}/health/ready"

    try:
        response = httpx.get(url, timeout=10)
        data = response.json()

        table = Table(title="Service Health")
        table.add_column("Component", style="cyan")
        table.add_column("Status")

        table.add_row("Database", "✓" if data.get("database") else "✗")
        table.add_row("Redis", "✓" if data.get("redis") else "✗")

        for component, healthy in (data.get("components") or {}).items():
            table.add_row(component, "✓" if healthy else "✗")

        console.print(table)

        if data.get("ready"):
            console.print("[bold green]All services healthy![/bold green]")
        else:
            console.print("[bold yellow]Some services unhealthy[/bold yellow]")
            raise typer.Exit(code=1)

    except httpx.RequestError as e:
        console.print(f"[bold red]Cannot connect to API: {e}[/bold red]")
        console.print("[dim]Is the API server running?[/dim]")
        raise typer.Exit(code=1)


@app.command()
def worker() -> None:
    """Start a Celery worker with beat (for development)."""
    console.print("[bold blue]Starting Celery worker...[/bold blue]")

    import subprocess
    import sys

    subprocess.run(
        [
            sys.executable,
            "-m",
            "celery",
            "-A",
            "studio_ledger.worker",
            "worker",
            "--beat",
            "--loglevel=info",
            "-Q",
            "high,default,low",
        ],
        check=True,
    )


if __name__ == "__main__":
    app()
