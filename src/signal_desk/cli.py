"""Typer CLI: signal-desk generate, refresh, decisions, stats."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from signal_desk.common.errors import PersistenceFailure, SignalDeskError

app = typer.Typer(
    name="signal-desk",
    help="Risk-managed trade signal generation with human review",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show pipeline logs"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _fail(exc: SignalDeskError) -> None:
    console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
    if exc.retryable:
        console.print("[dim]This error is retryable.[/dim]")
    raise typer.Exit(code=1)


@app.command()
def generate(
    symbol: str = typer.Argument(help="Asset symbol, e.g. BTC"),
    timeframe: str = typer.Option("1h", "--timeframe", "-t", help="Analysis timeframe"),
    balance: Optional[float] = typer.Option(
        None, "--balance", "-b",
        help="Account balance for position sizing (default from settings)",
    ),
    risk: Optional[float] = typer.Option(
        None, "--risk", "-r",
        help="Max fraction of the account risked (e.g. 0.02 for 2%)",
    ),
    output: str = typer.Option(
        "table", "--output", "-o",
        help="Output format: table, json",
    ),
    review: bool = typer.Option(
        False, "--review",
        help="Prompt for a decision and record it",
    ),
) -> None:
    """Generate a trade signal and put it up for review."""
    from signal_desk.signals.formatters import format_json, format_table

    async def _run() -> None:
        from signal_desk.pipeline import SignalPipeline
        from signal_desk.signals.tracker import DecisionTracker

        pipeline = SignalPipeline(
            store=DecisionTracker() if review else None,
            account_balance=balance,
            max_risk_fraction=risk,
        )
        try:
            result = await pipeline.generate(symbol, timeframe)
            if output == "json":
                console.print(format_json(result))
            else:
                format_table(result, console)
            if review:
                await _review(pipeline, symbol, timeframe)
        finally:
            await pipeline.close()

    try:
        asyncio.run(_run())
    except SignalDeskError as exc:
        _fail(exc)


async def _review(pipeline, symbol: str, timeframe: str) -> None:
    from signal_desk.signals.lifecycle import SignalModification

    choice = typer.prompt("Decision [approve/reject/modify/skip]", default="skip").strip().lower()
    try:
        if choice == "approve":
            decision = await pipeline.approve(symbol, timeframe)
        elif choice == "reject":
            reason = typer.prompt("Reason", default="", show_default=False) or None
            decision = await pipeline.reject(symbol, timeframe, reason=reason)
        elif choice == "modify":
            stop = typer.prompt("New stop loss", type=float)
            reason = typer.prompt("Reason", default="", show_default=False) or None
            decision, replacement = await pipeline.modify(
                symbol, timeframe, SignalModification(stop_loss=stop), reason=reason,
            )
            new = replacement.signal
            console.print(
                f"  Replacement {new.id[:8]}: stop ${new.stop_loss:,.2f} "
                f"size {new.position_size:.6f} R:R {new.risk_reward:.2f} "
                f"({replacement.state.value})"
            )
        else:
            console.print("[dim]No decision recorded; signal left pending.[/dim]")
            return
    except PersistenceFailure as exc:
        console.print(f"[yellow]{exc.decision.outcome.value} recorded but not saved: {exc.cause}[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[bold]{decision.outcome.value}[/bold] signal {decision.signal_id[:8]}")


@app.command()
def refresh(
    symbol: str = typer.Argument(help="Asset symbol, e.g. BTC"),
    timeframe: str = typer.Option("1h", "--timeframe", "-t", help="Analysis timeframe"),
) -> None:
    """Generate a signal, then re-fetch and report what changed."""
    from signal_desk.signals.formatters import format_json

    async def _run() -> None:
        from signal_desk.pipeline import SignalPipeline

        pipeline = SignalPipeline()
        try:
            await pipeline.generate(symbol, timeframe)
            result = await pipeline.refresh(symbol, timeframe)
            console.print(format_json(result))
            if result.changes.significant:
                console.print("[yellow]Significant changes since the signal was generated.[/yellow]")
        finally:
            await pipeline.close()

    try:
        asyncio.run(_run())
    except SignalDeskError as exc:
        _fail(exc)


@app.command()
def decisions(
    symbol: Optional[str] = typer.Option(None, "--symbol", "-s", help="Filter by symbol"),
) -> None:
    """List recorded review decisions."""

    async def _run() -> None:
        from signal_desk.signals.formatters import format_decisions_table
        from signal_desk.signals.tracker import DecisionTracker

        tracker = DecisionTracker()
        rows = await tracker.get_decisions(symbol)
        format_decisions_table(rows, console)

    asyncio.run(_run())


@app.command()
def stats() -> None:
    """Show review decision statistics."""

    async def _run() -> None:
        from signal_desk.signals.tracker import DecisionTracker

        tracker = DecisionTracker()
        summary = await tracker.get_summary()

        console.print("[bold]Decision Summary[/bold]")
        console.print(f"  Total decisions: {summary['total_decisions']}")
        console.print(f"  Approved:        {summary['approved']}")
        console.print(f"  Rejected:        {summary['rejected']}")
        console.print(f"  Modified:        {summary['modified']}")
        if summary["approval_rate"] is not None:
            console.print(f"  Approval rate:   {summary['approval_rate']:.1%}")
        else:
            console.print("  Approval rate:   N/A (no decisions)")
        if summary["avg_risk_reward"] is not None:
            console.print(f"  Avg R:R:         {summary['avg_risk_reward']:.2f}")

    asyncio.run(_run())


if __name__ == "__main__":
    app()
