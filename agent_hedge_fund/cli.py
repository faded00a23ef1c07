"""
CLI Entry Point for the Agent Hedge Fund services.

Commands:
  agent    - Run the yield agent on its schedule (or once with --once)
  serve    - Serve the x402-protected API (optionally with the agent)
  fees     - Show the fee schedule
  verify   - Check a payment proof against the ledger
  status   - Show a model's on-chain owner and assets
  config   - Show current configuration
"""

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from agent_hedge_fund import __version__
from agent_hedge_fund.agent import RunState, YieldAgent
from agent_hedge_fund.config import AppConfig
from agent_hedge_fund.errors import ConfigurationError, HedgeFundError
from agent_hedge_fund.ledger.web3_ledger import Web3Ledger
from agent_hedge_fund.payments import PaymentGate, ReplayGuard, default_fee_schedule

console = Console()


def setup_logging(level: str):
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def build_gate(cfg: AppConfig, ledger: Web3Ledger) -> PaymentGate:
    return PaymentGate(
        default_fee_schedule(),
        ledger,
        ReplayGuard(cfg.gateway.replay_ttl_seconds, cfg.gateway.replay_max_entries),
    )


def _fail(message: str):
    console.print(f"[red]{message}[/red]")
    console.print("Set up your .env file first.")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="hedgefund")
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
@click.pass_context
def cli(ctx, log_level):
    """Agent Hedge Fund - x402 payment gate and autonomous yield agent."""
    try:
        cfg = AppConfig()
    except ConfigurationError as e:
        _fail(f"Invalid configuration: {e}")
    setup_logging(log_level or cfg.log_level)
    ctx.obj = cfg


@cli.command()
@click.option("--interval", type=int, default=None, help="Seconds between runs")
@click.option("--model-id", type=int, default=None, help="Managed model to tend")
@click.option("--once", is_flag=True, help="Run a single pass and exit")
@click.pass_obj
def agent(cfg: AppConfig, interval, model_id, once):
    """Start the yield agent."""
    if interval is not None:
        cfg.agent.interval_seconds = interval
    if model_id is not None:
        cfg.agent.model_id = model_id

    try:
        cfg.require_agent()
        yield_agent = YieldAgent(cfg, Web3Ledger.from_config(cfg))
    except (ConfigurationError, ValueError) as e:
        _fail(f"Cannot start yield agent: {e}")

    if not once:
        yield_agent.start()
        return

    result = yield_agent.run_once()
    style = {"done": "green", "skip": "yellow", "failed": "red"}[result.state.value]
    console.print(Panel(
        f"State: [{style}]{result.state.value.upper()}[/{style}]\n"
        f"Reason: {result.reason or '-'}\n"
        f"Assets before: {result.assets_before if result.assets_before is not None else '-'}\n"
        f"Yield: {result.yield_wei or '-'}\n"
        f"Tx: {result.tx_hash or '-'}\n"
        f"Assets after: {result.assets_after if result.assets_after is not None else '-'}",
        title=f"[bold]Model #{result.model_id}[/bold]",
    ))
    if result.state is RunState.FAILED:
        sys.exit(1)


@cli.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Bind port")
@click.option("--with-agent", is_flag=True, help="Also run the yield agent in this process")
@click.pass_obj
def serve(cfg: AppConfig, host, port, with_agent):
    """Serve the payment-gated API."""
    import uvicorn
    from agent_hedge_fund.server import create_app

    try:
        cfg.require_gateway()
        if with_agent:
            cfg.require_agent()
        ledger = Web3Ledger.from_config(cfg)
        yield_agent = YieldAgent(cfg, ledger) if with_agent else None
    except (ConfigurationError, ValueError) as e:
        _fail(f"Cannot start API: {e}")

    app = create_app(cfg, build_gate(cfg, ledger), yield_agent)
    uvicorn.run(app, host=host or cfg.gateway.host, port=port or cfg.gateway.port,
                log_config=None)


@cli.command()
def fees():
    """Show the fee schedule for protected routes."""
    table = Table(title="x402 Fee Schedule")
    table.add_column("Tier", style="cyan")
    table.add_column("Route")
    table.add_column("ETH", style="green")
    table.add_column("Wei")
    table.add_column("Description", style="dim")

    for route in default_fee_schedule().values():
        table.add_row(route.tier, route.key, route.display_amount,
                      str(route.amount_wei), route.description)

    console.print(table)


@cli.command()
@click.argument("address")
@click.argument("amount")
@click.argument("proof")
@click.argument("route")
@click.pass_obj
def verify(cfg: AppConfig, address, amount, proof, route):
    """Check PROOF (a tx hash) pays AMOUNT wei from ADDRESS for ROUTE."""
    try:
        cfg.require_gateway()
    except ConfigurationError as e:
        _fail(str(e))

    gate = build_gate(cfg, Web3Ledger.from_config(cfg))
    if gate.verify(address, amount, proof, route):
        console.print(f"[green]Payment verified for {route}[/green]")
    else:
        console.print(f"[red]Payment NOT verified for {route}[/red]")
        sys.exit(2)


@cli.command()
@click.option("--model-id", type=int, default=None)
@click.pass_obj
def status(cfg: AppConfig, model_id):
    """Show a managed model's owner and total assets."""
    model_id = cfg.agent.model_id if model_id is None else model_id
    if not cfg.ledger.registry_address:
        _fail("No REGISTRY_ADDRESS configured.")

    ledger = Web3Ledger.from_config(cfg)
    try:
        owner = ledger.get_owner(model_id)
        assets = ledger.get_total_assets(model_id)
    except HedgeFundError as e:
        _fail(f"Ledger error: {e}")

    agent_address = cfg.agent_address or ""
    is_owner = bool(owner) and owner.lower() == agent_address.lower()
    from web3 import Web3
    console.print(Panel(
        f"Owner: {owner or '[dim]not minted[/dim]'}\n"
        f"Agent is owner: {'[green]yes[/green]' if is_owner else '[yellow]no[/yellow]'}\n"
        f"Total Managed Assets: [bold green]{Web3.from_wei(assets, 'ether')} ETH[/bold green] "
        f"({assets} wei)",
        title=f"[bold]Model #{model_id}[/bold]",
    ))


@cli.command()
@click.pass_obj
def config(cfg: AppConfig):
    """Show current configuration."""
    console.print(Panel(
        f"RPC: {cfg.ledger.rpc_url} (chain {cfg.ledger.chain_id})\n"
        f"Registry: {cfg.ledger.registry_address or 'Not set'}\n"
        f"Wallet: {'Configured' if cfg.wallet.private_key else 'Not set'}\n"
        f"Model: #{cfg.agent.model_id}\n"
        f"Interval: {cfg.agent.interval_seconds}s\n"
        f"Confirmation timeout: {cfg.agent.confirmation_timeout:.0f}s\n"
        f"Strategy: {cfg.agent.strategy}\n"
        f"Fee collector: {cfg.gateway.fee_collector or 'Not set'}\n"
        f"Replay window: {cfg.gateway.replay_ttl_seconds:.0f}s / "
        f"{cfg.gateway.replay_max_entries} proofs\n"
        f"API: {cfg.gateway.host}:{cfg.gateway.port}",
        title="[bold]Configuration[/bold]",
    ))


def main():
    cli()


if __name__ == "__main__":
    main()
