"""
CLI entry point: rebal fee | slippage | size | evaluate | backtest | health.

Every command loads config from --config (default config.yaml), explains its
result in plain text, and logs decisions to the journal.
"""

import logging
import sys
import uuid
from pathlib import Path

import click
from dotenv import load_dotenv

from config import AppConfig, EngineConfig, EngineConfigError, load_config, load_engine_config

load_dotenv()

logger = logging.getLogger("rebal")


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


def _load_app_config(ctx: click.Context) -> AppConfig:
    try:
        return load_config(ctx.obj["config_path"])
    except (FileNotFoundError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc


def _load_engine_config(cfg: AppConfig | None) -> EngineConfig:
    try:
        if cfg is None:
            return load_engine_config()
        return load_engine_config(cfg.engine.config_path or None, profile=cfg.engine.profile or None)
    except EngineConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _engine_for_calculators(ctx: click.Context) -> EngineConfig:
    """Engine config for the stateless calculators; the app config is optional here."""
    if Path(ctx.obj["config_path"]).exists():
        return _load_engine_config(_load_app_config(ctx))
    return _load_engine_config(None)


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """rebal: trade execution simulation and opportunistic rebalancing."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- rebal fee ----------


@cli.command()
@click.option("--value", "trade_value", required=True, type=float, help="Trade value in quote currency.")
@click.option("--maker/--taker", "is_maker", default=None, help="Order side for maker/taker fee schedules.")
@click.pass_context
def fee(ctx: click.Context, trade_value: float, is_maker: bool | None) -> None:
    """Show the fee charged on a trade of the given value."""
    from cli.output import format_fee
    from trade_core.contracts import InvalidInputError
    from trade_core.fees import calculate_fee

    engine = _engine_for_calculators(ctx)
    try:
        result = calculate_fee(trade_value, is_maker, engine.fees)
    except InvalidInputError as exc:
        raise click.BadParameter(str(exc), param_hint="--value") from exc
    click.echo(format_fee(trade_value, result))


# ---------- rebal slippage ----------


@cli.command()
@click.option("--price", required=True, type=float, help="Quoted price.")
@click.option("--quantity", required=True, type=float, help="Order quantity.")
@click.option("--sell", "is_sell", is_flag=True, default=False, help="Price a sell instead of a buy.")
@click.option("--volume", "daily_volume", default=None, type=float, help="Daily volume for volume-based slippage.")
@click.pass_context
def slippage(ctx: click.Context, price: float, quantity: float, is_sell: bool, daily_volume: float | None) -> None:
    """Show slippage and the execution price for an order."""
    from cli.output import format_slippage
    from trade_core.contracts import InvalidInputError, SlippageInput
    from trade_core.slippage import calculate_slippage

    engine = _engine_for_calculators(ctx)
    try:
        result = calculate_slippage(SlippageInput(price, quantity, not is_sell, daily_volume), engine.slippage)
    except InvalidInputError as exc:
        raise click.BadParameter(str(exc), param_hint="--price") from exc
    click.echo(format_slippage(quantity, not is_sell, result))


# ---------- rebal size ----------


@cli.command()
@click.option("--portfolio", "portfolio_value", required=True, type=float, help="Total portfolio value.")
@click.option("--confidence", required=True, type=float, help="Signal confidence in [0, 1].")
@click.option("--price", required=True, type=float, help="Asset price.")
@click.pass_context
def size(ctx: click.Context, portfolio_value: float, confidence: float, price: float) -> None:
    """Show the confidence-scaled position size."""
    from trade_core.position_manager import calculate_position_size

    if price <= 0:
        raise click.BadParameter("Price must be greater than zero", param_hint="--price")
    engine = _engine_for_calculators(ctx)
    quantity = calculate_position_size(portfolio_value, confidence, price, engine.sizing)
    click.echo(f"Allocation   : {engine.sizing.min_allocation:.0%} - {engine.sizing.max_allocation:.0%} of portfolio")
    click.echo(f"Quantity     : {quantity:.6f}")
    click.echo(f"Value        : ${quantity * price:,.2f}")


# ---------- rebal evaluate ----------


@cli.command()
@click.argument("snapshot", type=click.Path(dir_okay=False))
@click.option("--no-journal", is_flag=True, default=False, help="Do not record the evaluation.")
@click.pass_context
def evaluate(ctx: click.Context, snapshot: str, no_journal: bool) -> None:
    """Evaluate opportunity selling for a portfolio snapshot and explain the plan."""
    cfg = _load_app_config(ctx)
    engine = _load_engine_config(cfg)
    from cli.output import format_plan
    from cli.structured_log import StructuredEventLogger
    from data import SnapshotError, load_snapshot
    from journal import JournalWriter
    from trade_core.opportunity_sell import evaluate_opportunity_sell

    try:
        request = load_snapshot(snapshot, engine.opportunity_selling)
    except SnapshotError as exc:
        raise click.ClickException(str(exc)) from exc

    plan = evaluate_opportunity_sell(request)
    click.echo(format_plan(plan))

    events = StructuredEventLogger(
        cfg.user_id,
        enabled=cfg.alerting.structured_logs,
        webhook_url=cfg.alerting.webhook_url,
    )
    events.opportunity_sell_evaluated(
        plan.buy_signal_asset_id,
        plan.decision.value,
        plan.reason,
        len(plan.sell_orders),
        plan.projected_proceeds,
    )

    if not no_journal:
        journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
        journal.opportunity_sell_evaluation(plan, cfg.user_id)


# ---------- rebal backtest ----------


@cli.command()
@click.argument("signals_path", metavar="SIGNALS", type=click.Path(dir_okay=False))
@click.pass_context
def backtest(ctx: click.Context, signals_path: str) -> None:
    """Replay trade signals through the simulator and summarize fills and P&L."""
    cfg = _load_app_config(ctx)
    engine = _load_engine_config(cfg)
    from backtest import run_backtest
    from cli.output import format_backtest_summary
    from cli.structured_log import StructuredEventLogger
    from data import SnapshotError, load_signals
    from execution import TradeSimulator
    from journal import JournalWriter

    try:
        signals = load_signals(signals_path)
    except SnapshotError as exc:
        raise click.ClickException(str(exc)) from exc
    if not signals:
        click.echo("No signals to replay.")
        return

    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    events = StructuredEventLogger(
        cfg.user_id,
        enabled=cfg.alerting.structured_logs,
        webhook_url=cfg.alerting.webhook_url,
    )
    backtest_id = str(uuid.uuid4())

    def on_event(event_type: str, payload: dict) -> None:
        if event_type == "fill":
            f = payload["fill"]
            journal.fill(f.asset_id, f.side, f.quantity, f.execution_price, f.fee, f.slippage_bps, backtest_id=backtest_id)
            events.fill_executed(f.asset_id, f.side, f.quantity, f.execution_price, f.fee, f.slippage_bps)
            if f.side == "sell" and f.cost_basis is not None:
                journal.trade(f.asset_id, f.cost_basis, f.execution_price, f.quantity, f.realized_pnl, backtest_id=backtest_id)
        elif event_type == "rejection":
            r = payload["rejection"]
            journal.rejection(r.asset_id, r.action.value, r.reason, backtest_id=backtest_id)
            events.trade_rejected(r.asset_id, r.action.value, r.reason)
        elif event_type == "opportunity_sell":
            plan = payload["plan"]
            journal.opportunity_sell_evaluation(plan, cfg.user_id, is_backtest=True, backtest_id=backtest_id)
            events.opportunity_sell_evaluated(
                plan.buy_signal_asset_id,
                plan.decision.value,
                plan.reason,
                len(plan.sell_orders),
                plan.projected_proceeds,
            )

    simulator = TradeSimulator.from_engine_config(engine, opportunity_enabled=cfg.opportunity_selling.enabled)

    click.echo(f"Running backtest: {len(signals)} signals, initial cash ${cfg.backtest.initial_cash:,.2f} ...")
    result = run_backtest(
        signals,
        simulator,
        initial_cash=cfg.backtest.initial_cash,
        journal_callback=on_event,
    )
    events.backtest_complete(len(result.fills), len(result.rejections), result.total_return_pct)
    click.echo(format_backtest_summary(result))


# ---------- rebal health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: app config and engine config.

    Exit code 0 = healthy, 1 = unhealthy.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded (user {cfg.user_id})"))
    except Exception as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        engine = load_engine_config(cfg.engine.config_path or None, profile=cfg.engine.profile or None)
        checks.append((
            "engine_config",
            True,
            f"validated (v{engine.version}, fees={engine.fees.type.value}, slippage={engine.slippage.type.value})",
        ))
    except EngineConfigError as e:
        checks.append(("engine_config", False, str(e)))

    journal_dir = Path(cfg.journal.path).parent
    if journal_dir.exists() and not journal_dir.is_dir():
        checks.append(("journal", False, f"{journal_dir} is not a directory"))
    else:
        checks.append(("journal", True, str(cfg.journal.path)))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
