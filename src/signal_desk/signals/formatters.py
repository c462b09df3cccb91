"""Signal output formatters: Rich tables and JSON."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from rich.console import Console
from rich.table import Table

from signal_desk.pipeline import GenerationResult, RefreshResult
from signal_desk.signals.models import PositionType, QualityFlag

_QUALITY_COLORS = {
    QualityFlag.OK: "green",
    QualityFlag.DEGRADED: "yellow",
    QualityFlag.INSUFFICIENT: "red",
}


def format_table(result: GenerationResult, console: Console | None = None) -> None:
    """Print a signal and its exit ladder as Rich tables."""
    if console is None:
        console = Console()

    signal = result.signal
    dir_color = "green" if signal.position_type is PositionType.LONG else "red"
    conf = signal.confidence
    conf_color = _QUALITY_COLORS[conf.quality_flag]

    table = Table(
        title=f"{signal.symbol} {signal.timeframe} Trade Signal",
        caption=f"Generated at {signal.created_at.strftime('%Y-%m-%d %H:%M UTC')}",
        show_lines=True,
    )
    table.add_column("Field", style="bold", width=16)
    table.add_column("Value", width=40)

    table.add_row("Position", f"[{dir_color}]{signal.position_type.value}[/{dir_color}]")
    table.add_row("Entry", f"${signal.entry:,.2f}")
    table.add_row("Stop loss", f"${signal.stop_loss:,.2f}")
    table.add_row("Position size", f"{signal.position_size:.6f}")
    table.add_row("Max loss", f"${signal.max_loss:,.2f}")
    rr_color = "green" if signal.meets_min_risk_reward else "yellow"
    table.add_row(
        "Risk:reward",
        f"[{rr_color}]{signal.risk_reward:.2f} ({signal.risk_reward_status})[/{rr_color}]",
    )
    table.add_row(
        "Confidence",
        f"[{conf_color}]{conf.overall:.0f} {conf.display_label}[/{conf_color}]",
    )
    table.add_row(
        "Dimensions",
        f"tech {conf.technical:.0f} | sent {conf.sentiment:.0f} | "
        f"chain {conf.on_chain:.0f} | risk {conf.risk:.0f}",
    )
    table.add_row("Data quality", f"{signal.data_quality.overall:.0f}%")
    table.add_row("Volatility", signal.volatility_source)
    table.add_row("State", result.state.value)
    console.print(table)

    ladder = Table(title="Take Profit Ladder")
    ladder.add_column("Tier", width=5)
    ladder.add_column("Price", justify="right", width=14)
    ladder.add_column("Allocation", justify="right", width=10)
    for name, tp in zip(("TP1", "TP2", "TP3"), signal.take_profits.tiers):
        ladder.add_row(name, f"${tp.price:,.2f}", f"{tp.allocation:.0f}%")
    console.print(ladder)

    failed = signal.data_quality.failed
    if failed:
        console.print(f"[yellow]Failed sources: {', '.join(failed)}[/yellow]")
    if conf.recommendation != "proceed":
        console.print(f"[{conf_color}]Recommendation: {conf.recommendation}[/{conf_color}]")


def format_json(result: GenerationResult | RefreshResult) -> str:
    """Format a generation or refresh result as a JSON string."""
    return json.dumps(result.to_dict(), indent=2)


def format_decisions_table(decisions: list[dict], console: Console | None = None) -> None:
    """Print persisted decisions as a Rich table (newest first)."""
    if console is None:
        console = Console()

    if not decisions:
        console.print("[yellow]No decisions recorded yet.[/yellow]")
        return

    table = Table(
        title="Signal Decisions",
        caption=f"As of {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}",
        show_lines=True,
    )
    # Only Reason shrinks on a narrow console
    table.add_column("Outcome", style="bold", no_wrap=True)
    table.add_column("Symbol", no_wrap=True)
    table.add_column("TF", no_wrap=True)
    table.add_column("Dir", no_wrap=True)
    table.add_column("Entry", justify="right", no_wrap=True)
    table.add_column("Stop", justify="right", no_wrap=True)
    table.add_column("R:R", justify="right", no_wrap=True)
    table.add_column("Conf", justify="right", no_wrap=True)
    table.add_column("Reason", max_width=30, overflow="fold")

    colors = {"APPROVED": "green", "REJECTED": "red", "MODIFIED": "yellow"}
    for d in decisions:
        color = colors.get(d["outcome"], "white")
        rr = d.get("risk_reward")
        conf = d.get("confidence_overall")
        table.add_row(
            f"[{color}]{d['outcome']}[/{color}]",
            d["symbol"],
            d["timeframe"],
            d["position_type"],
            f"${d['entry']:,.2f}",
            f"${d['stop_loss']:,.2f}",
            f"{rr:.2f}" if rr is not None else "-",
            f"{conf:.0f}" if conf is not None else "-",
            (d.get("reason") or "")[:60],
        )

    console.print(table)
    console.print(f"\n[dim]{len(decisions)} decision(s) total[/dim]")
