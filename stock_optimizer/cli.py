"""
Stock Optimizer CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute the action through ``OptimizationEngine``.
  5. Report result to stdout.

Domain failures exit with code 1 when the request can be fixed by the
caller (bad weights, unknown portfolio, missing data) and 2 otherwise.

Install and run::

    pip install -e .
    stock-optimizer --help
    stock-optimizer init-db
    stock-optimizer import-prices --file data/prices.csv
    stock-optimizer import-portfolio --file data/holdings.csv --portfolio-id p-1 --user-id u-1
    stock-optimizer generate-upgrade p-1 --risk 0.7 --output rec.json
    stock-optimizer apply-upgrade p-1 --from-file rec.json
    stock-optimizer start-scheduler
"""

from __future__ import annotations

import json
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="stock-optimizer",
    help="Stock portfolio optimizer: indicators, predictions and allocation upgrades.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from stock_optimizer.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from stock_optimizer.utils.logging import configure_logging
    configure_logging(config.logging)


def _engine(config, db_path: Optional[str] = None, as_of: Optional[date] = None):
    from stock_optimizer.engine import OptimizationEngine
    return OptimizationEngine(config, db_path=db_path, as_of=as_of)


def _exit_on_domain_error(exc) -> None:
    """Print an ``OptimizerError`` and exit 1 (caller fixable) or 2."""
    typer.echo(f"[ERROR] {exc}", err=True)
    raise typer.Exit(code=1 if exc.is_client_error else 2)


def _parse_date_option(value: Optional[str], name: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        typer.echo(f"[ERROR] Invalid {name} '{value}'. Expected YYYY-MM-DD.", err=True)
        raise typer.Exit(code=1)


def _parse_weights(spec: str) -> dict[str, float]:
    """Parse ``"AAPL=0.6,MSFT=0.4"`` into a weight map."""
    weights: dict[str, float] = {}
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        symbol, sep, raw = part.partition("=")
        if not sep:
            raise ValueError(f"Expected SYMBOL=WEIGHT, got '{part}'.")
        weights[symbol.strip().upper()] = float(raw)
    return weights


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times; all DDL uses IF NOT EXISTS.
    """
    from stock_optimizer.db.schema import ALL_TABLE_NAMES

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    engine = _engine(config, db_path)
    typer.echo(f"Initializing database at: {engine.db_path}")
    engine.init_db()

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)
    opt = config.optimizer

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:     {config.database.db_path}")
    typer.echo(f"  Allocation bounds: {opt.min_stock_allocation:.2%} .. {opt.max_stock_allocation:.2%}")
    typer.echo(f"  History window:    {opt.historical_days} days")
    typer.echo(f"  Horizon:           {opt.prediction_horizon} days")
    typer.echo(f"  Default risk:      {opt.default_risk_tolerance}")
    typer.echo(f"  Expansion:         {opt.enable_universe_expansion} (max {opt.max_expansion_stocks})")
    typer.echo(f"  Benchmark:         {config.tracker.benchmark_symbol}")
    typer.echo(f"  Log level:         {config.logging.level}")
    typer.echo(f"  Debug mode:        {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(mode="json"), indent=2))

    typer.echo("")
    typer.echo("[OK] Config is valid.")


@app.command("import-prices")
def import_prices(
    prices_file: str = typer.Option(..., "--file", "-f", help="CSV of daily bars."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Validate bars but do not write to the database."
    ),
) -> None:
    """Import daily price bars from a CSV file.

    Columns: symbol, date, close (required); open, high, low, volume,
    adj_close (optional). Existing bars for the same symbol and date are
    replaced.
    """
    from stock_optimizer.ingestion.csv_import import parse_price_csv

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        bars = parse_price_csv(Path(prices_file))
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"[ERROR] CSV parse failed:\n{exc}", err=True)
        raise typer.Exit(code=1)

    symbols = sorted({b.symbol for b in bars})
    typer.echo(f"  Validated {len(bars)} bar(s) for {len(symbols)} symbol(s).")
    if dry_run:
        typer.echo("[DRY RUN] No bars written to database.")
        return

    written = _engine(config, db_path).import_prices(bars)
    typer.echo(f"  Upserted {written} bar(s): {', '.join(symbols)}")
    typer.echo("[OK] Prices imported.")


@app.command("import-portfolio")
def import_portfolio(
    holdings_file: str = typer.Option(..., "--file", "-f", help="CSV of holdings."),
    portfolio_id: str = typer.Option(..., "--portfolio-id", help="Identifier for the new portfolio."),
    user_id: str = typer.Option(..., "--user-id", help="Owning user."),
    name: Optional[str] = typer.Option(None, "--name", help="Display name."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Create a portfolio from a CSV of holdings.

    Columns: symbol, shares, entry_price (required); current_price,
    entry_date, company_name (optional).
    """
    from stock_optimizer.ingestion.csv_import import parse_holdings_csv
    from stock_optimizer.models.portfolio import Portfolio

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        holdings = parse_holdings_csv(Path(holdings_file))
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"[ERROR] CSV parse failed:\n{exc}", err=True)
        raise typer.Exit(code=1)

    portfolio = Portfolio(
        portfolio_id=portfolio_id, user_id=user_id, name=name or portfolio_id, holdings=holdings
    )
    try:
        saved = _engine(config, db_path).create_portfolio(portfolio)
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  {len(saved.holdings)} holding(s), total value {saved.total_value:,.2f}")
    typer.echo(f"[OK] Portfolio {portfolio_id} created.")


@app.command("compute-indicators")
def compute_indicators(
    symbol: Optional[str] = typer.Option(
        None, "--symbol", "-s", help="Single symbol; omit to refresh every known symbol."
    ),
    from_date: Optional[str] = typer.Option(None, "--from", help="Start date (YYYY-MM-DD)."),
    to_date: Optional[str] = typer.Option(None, "--to", help="End date (YYYY-MM-DD), default today."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Recompute technical indicators for one symbol or for all symbols.

    Stored snapshots in the range are replaced, never duplicated.
    """
    from stock_optimizer.errors import OptimizerError
    from stock_optimizer.utils.time_utils import today_utc

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    end = _parse_date_option(to_date, "--to") or today_utc()
    start = _parse_date_option(from_date, "--from") or end - timedelta(
        days=config.indicators.refresh_lookback_days
    )
    engine = _engine(config, db_path)

    if symbol is None:
        try:
            run = engine.refresh_indicators(as_of=end)
        except Exception as exc:
            typer.echo(f"[ERROR] Indicator refresh failed: {exc}", err=True)
            raise typer.Exit(code=2)
        typer.echo(f"  Snapshots written: {run.rows_processed}")
        typer.echo(f"[OK] Indicators refreshed (run {run.run_slug}).")
        return

    try:
        snapshots = engine.compute_indicators(symbol.upper(), start, end)
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except OptimizerError as exc:
        _exit_on_domain_error(exc)

    last = snapshots[-1]
    typer.echo(f"  {len(snapshots)} snapshot(s) for {symbol.upper()} [{start}..{end}]")
    typer.echo(
        f"  Latest {last.snapshot_date}: price={last.price:.2f} "
        "rsi=" + (f"{last.rsi14:.1f}" if last.rsi14 is not None else "n/a")
    )
    typer.echo("[OK] Indicators computed.")


@app.command("generate-upgrade")
def generate_upgrade(
    portfolio_id: str = typer.Argument(..., help="Portfolio to optimize."),
    risk: Optional[float] = typer.Option(
        None, "--risk", help="Risk tolerance 0 (conservative) .. 1 (aggressive)."
    ),
    expand: bool = typer.Option(False, "--expand", help="Consider symbols not currently held."),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Treat this date as today."),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Write the full recommendation as JSON to this file."
    ),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Compute an upgrade recommendation without applying it."""
    from stock_optimizer.errors import OptimizerError

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    engine = _engine(config, db_path, _parse_date_option(as_of, "--as-of"))

    try:
        rec = engine.generate_upgrade(portfolio_id, risk, expand)
    except OptimizerError as exc:
        _exit_on_domain_error(exc)

    typer.echo(
        f"Recommendation for {portfolio_id} ({rec.recommendation_type}, risk {rec.risk_tolerance}):"
    )
    for symbol, weight in rec.recommended_allocations.items():
        current = rec.current_allocations.get(symbol, 0.0)
        typer.echo(f"  {symbol:<8} {current:7.2%} -> {weight:7.2%}")
    typer.echo("")
    for action in rec.recommended_actions:
        typer.echo(
            f"  {action.action:<4} {action.symbol:<8} {action.share_delta:+10.2f} sh  "
            f"{action.reason}"
        )
    for symbol, reason in rec.excluded_symbols.items():
        typer.echo(f"  [excluded] {symbol}: {reason}")
    typer.echo("")
    typer.echo(
        f"  Expected return {rec.expected_performance.expected_return:.2f}%  "
        f"volatility {rec.expected_performance.expected_volatility:.2f}%  "
        f"confidence {rec.ai_confidence_score:.1f}"
    )

    if output:
        Path(output).write_text(rec.model_dump_json(indent=2), encoding="utf-8")
        typer.echo(f"  Written to {output}")
    typer.echo("[OK] Recommendation generated.")


@app.command("apply-upgrade")
def apply_upgrade(
    portfolio_id: str = typer.Argument(..., help="Portfolio to update."),
    from_file: Optional[str] = typer.Option(
        None, "--from-file", help="Recommendation JSON written by generate-upgrade --output."
    ),
    weights: Optional[str] = typer.Option(
        None, "--weights", help='Target weights, e.g. "AAPL=0.6,MSFT=0.4".'
    ),
    risk: Optional[float] = typer.Option(None, "--risk", help="Risk tolerance recorded with the change."),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Treat this date as today."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Apply target weights to a portfolio (all-or-nothing)."""
    from stock_optimizer.errors import OptimizerError
    from stock_optimizer.models.recommendation import UpgradeRecommendation

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if (from_file is None) == (weights is None):
        typer.echo("[ERROR] Give exactly one of --from-file or --weights.", err=True)
        raise typer.Exit(code=1)

    try:
        if from_file is not None:
            rec = UpgradeRecommendation.model_validate_json(
                Path(from_file).read_text(encoding="utf-8")
            )
            if rec.portfolio_id != portfolio_id:
                raise ValueError(
                    f"Recommendation is for {rec.portfolio_id}, not {portfolio_id}."
                )
            allocations = rec.recommended_allocations
            risk = rec.risk_tolerance if risk is None else risk
        else:
            allocations = _parse_weights(weights)
    except (OSError, ValueError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    engine = _engine(config, db_path, _parse_date_option(as_of, "--as-of"))
    try:
        portfolio = engine.apply_upgrade(portfolio_id, allocations, risk)
    except OptimizerError as exc:
        _exit_on_domain_error(exc)

    for h in portfolio.holdings:
        typer.echo(f"  {h.symbol:<8} {h.shares:10.2f} sh  {h.weight:6.2f}%")
    typer.echo(f"  Total value {portfolio.total_value:,.2f}  risk score {portfolio.risk_score:.1f}")
    typer.echo(f"[OK] Upgrade applied to {portfolio_id}.")


@app.command("verify-predictions")
def verify_predictions(
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Treat this date as today."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Record realized prices for predictions whose target date has passed."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        run = _engine(config, db_path).verify_predictions(_parse_date_option(as_of, "--as-of"))
    except Exception as exc:
        typer.echo(f"[ERROR] Verification failed: {exc}", err=True)
        raise typer.Exit(code=2)

    typer.echo(f"  Verified: {run.rows_processed}")
    typer.echo("[OK] Predictions verified.")


@app.command("show-history")
def show_history(
    portfolio_id: str = typer.Argument(..., help="Portfolio whose history to show."),
    ai_only: bool = typer.Option(False, "--ai-only", help="Only applied AI recommendations."),
    days: Optional[int] = typer.Option(None, "--days", help="Only changes from the last N days."),
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Print a portfolio's change history, newest first."""
    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    engine = _engine(config, db_path)

    if ai_only and days is not None:
        typer.echo("[ERROR] --ai-only and --days cannot be combined.", err=True)
        raise typer.Exit(code=1)
    if ai_only:
        records = engine.get_ai_recommendation_history(portfolio_id)
    elif days is not None:
        try:
            records = engine.get_recent_changes(portfolio_id, days)
        except ValueError as exc:
            typer.echo(f"[ERROR] {exc}", err=True)
            raise typer.Exit(code=1)
    else:
        records = engine.get_portfolio_history(portfolio_id)

    if not records:
        typer.echo(f"No history for {portfolio_id}.")
        return
    for r in records:
        change = r.value_change
        change_text = f"{change:+,.2f}" if change is not None else "n/a"
        typer.echo(
            f"  {r.change_date.isoformat(timespec='seconds')}  {r.change_type:<17} "
            f"{r.change_source:<9} value {change_text:>12}  {r.change_reason or ''}"
        )
    typer.echo(f"[OK] {len(records)} record(s).")


@app.command("start-scheduler")
def start_scheduler(
    db_path: Optional[str] = typer.Option(None, "--db-path", help="Override DB path."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Run the daily indicator refresh and weekly performance sweep until stopped.

    Blocks until Ctrl-C. Recommendations applied through this process are
    tracked by its weekly sweep.
    """
    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    daemon = _engine(config, db_path).build_scheduler()
    typer.echo(
        f"Scheduler starting: daily refresh at {config.tracker.indicator_refresh_time}, "
        f"weekly sweep on weekday {config.tracker.sweep_weekday} at {config.tracker.sweep_time}."
    )
    daemon.start()
    typer.echo("[OK] Scheduler stopped.")


if __name__ == "__main__":
    app()
