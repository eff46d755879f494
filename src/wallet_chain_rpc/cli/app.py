"""CLI for wallet-chain-rpc - run wallet RPC requests against a local wallet state."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from wallet_chain_rpc.config import (
    WalletRpcConfig,
    get_config_path,
    load_config,
    save_config,
)

app = typer.Typer(
    name="wallet-chain-rpc",
    help="Add and switch EVM chains the way a wallet answers wallet_addEthereumChain.",
    no_args_is_help=True,
)
console = Console()

_config_path: Path | None = None


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        console.print(f"wallet-chain-rpc {version('wallet-chain-rpc')}")
        raise typer.Exit()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main(
    config: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config.yaml (default: .wallet-chain-rpc/config.yaml)",
        envvar="WALLET_CHAIN_RPC_CONFIG",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every pipeline step"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Add and switch EVM chains the way a wallet answers wallet_addEthereumChain."""
    global _config_path
    _config_path = config or get_config_path()
    level = "DEBUG" if verbose else load_config(_config_path).logging.level
    _setup_logging(level)


def _run(coro):
    """Run an async function synchronously."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            import concurrent.futures
            with concurrent.futures.ThreadPoolExecutor() as pool:
                return pool.submit(asyncio.run, coro).result()
        return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


def _config_file() -> Path:
    return _config_path or get_config_path()


def _read_params(value: str) -> object:
    """Params given inline as JSON, or as a path to a JSON file."""
    text = value
    if not value.lstrip().startswith(("{", "[")):
        path = Path(value)
        if not path.is_file():
            console.print(f"[red]No such params file:[/red] {path}")
            raise typer.Exit(2)
        text = path.read_text(encoding="utf-8")
    try:
        params = json.loads(text)
    except json.JSONDecodeError as exc:
        console.print(f"[red]PARAMS is not valid JSON:[/red] {exc}")
        raise typer.Exit(2)
    return params if isinstance(params, list) else [params]


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


@app.command("init")
def init(force: bool = typer.Option(False, "--force", help="Overwrite an existing config")):
    """Write a default configuration file."""
    path = _config_file()
    if path.exists() and not force:
        console.print(f"[yellow]Config already exists at {path}.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    save_config(WalletRpcConfig(), path)
    console.print(f"Config written to [cyan]{path}[/cyan]")


@app.command("add-chain")
def add_chain(
    params: str = typer.Argument(help="wallet_addEthereumChain params: JSON text or a .json file"),
    origin: str = typer.Option("example.com", "--origin", "-o", help="Requesting origin"),
    approve: bool = typer.Option(True, "--approve/--reject", help="Answer to the confirmation prompt"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Do not write the resulting state back"),
):
    """Run wallet_addEthereumChain and show every collaborator call it made."""
    from wallet_chain_rpc.add_chain import METHOD_NAME
    from wallet_chain_rpc.controllers import HookCall, WalletControllers, record_calls
    from wallet_chain_rpc.middleware import dispatch

    path = _config_file()
    config = load_config(path)
    request = {"id": 1, "jsonrpc": "2.0", "method": METHOD_NAME, "params": _read_params(params), "origin": origin}

    controllers = WalletControllers.from_state(config.state, decider=lambda _request: approve)
    calls: list[HookCall] = []
    hooks = record_calls(controllers.hooks_for(origin), calls)

    response = _run(dispatch(request, hooks, approval_policy=config.approval.to_policy()))

    table = Table(title="Collaborator calls")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Hook", style="cyan")
    table.add_column("Arguments")
    table.add_column("Status", style="dim")
    for i, call in enumerate(calls, start=1):
        args = ", ".join(_describe(a) for a in call.args)
        if call.kwargs:
            args = ", ".join([args, *(f"{k}={v!r}" for k, v in call.kwargs.items())])
        table.add_row(
            str(i),
            call.name,
            args,
            f"[red]{call.error}[/red]" if call.error else "[green]OK[/green]",
        )
    console.print(table)
    console.print(Panel(json.dumps(response, indent=2), title="Response"))

    if not dry_run:
        config.state = controllers.to_state(config.state)
        save_config(config, path)
    if "error" in response:
        raise typer.Exit(1)


def _describe(value: object) -> str:
    if hasattr(value, "to_wire"):
        return json.dumps(value.to_wire())
    return repr(value)


@app.command("networks")
def networks():
    """List configured networks."""
    from wallet_chain_rpc.controllers import WalletControllers

    config = load_config(_config_file())
    controllers = WalletControllers.from_state(config.state)

    table = Table(title="Networks")
    table.add_column("Chain ID", style="cyan")
    table.add_column("Name")
    table.add_column("Symbol")
    table.add_column("Default RPC")
    table.add_column("Client ID", style="dim")
    for network in controllers.networks.networks:
        endpoint = network.default_rpc_endpoint
        table.add_row(
            network.chain_id,
            network.name,
            network.native_currency,
            endpoint.url,
            str(endpoint.network_client_id or ""),
        )
    console.print(table)


@app.command("permissions")
def permissions(
    origin: str = typer.Argument(None, help="Only show this origin"),
):
    """Show the permitted chains and active chain of each origin."""
    from wallet_chain_rpc.controllers import WalletControllers

    config = load_config(_config_file())
    controllers = WalletControllers.from_state(config.state)
    granted = controllers.permissions.permissions
    origins = [origin] if origin else sorted(set(granted) | set(config.state.domains))

    if not origins:
        console.print("[dim]No origins have permissions yet.[/dim]")
        return

    table = Table(title="Permitted chains")
    table.add_column("Origin", style="cyan")
    table.add_column("Permitted chains")
    table.add_column("Active chain")
    for name in origins:
        chain_ids = granted.get(name)
        table.add_row(
            name,
            ", ".join(chain_ids) if chain_ids is not None else "[dim]no permission[/dim]",
            controllers.selected.get_current_chain_id_for_domain(name) or "",
        )
    console.print(table)
