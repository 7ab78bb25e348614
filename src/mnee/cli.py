"""
MNEE CLI - Inspect balances and history, transfer, validate and parse token transactions.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import Any, TypeVar

import typer
from loguru import logger
from pydantic import BaseModel

from mnee.config import get_settings
from mnee.constants import DEFAULT_HISTORY_LIMIT
from mnee.errors import MneeError
from mnee.models import TransferRequest
from mnee.service import MneeService

app = typer.Typer(
    name="mnee",
    help="MNEE token client",
    add_completion=False,
)

T = TypeVar("T")


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _echo_json(data: Any) -> None:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", exclude_none=True)
    elif isinstance(data, list):
        data = [
            item.model_dump(mode="json", exclude_none=True) if isinstance(item, BaseModel) else item
            for item in data
        ]
    typer.echo(json.dumps(data, indent=2))


def _run(call: Callable[[MneeService], Awaitable[T]], log_level: str | None) -> T:
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    async def _main() -> T:
        async with MneeService.from_settings(settings) as service:
            return await call(service)

    try:
        return asyncio.run(_main())
    except MneeError as e:
        logger.error(f"{e.kind.value}: {e.message}")
        raise typer.Exit(1)


def _transfer_requests(to: list[str], amount: list[str]) -> list[TransferRequest]:
    if len(to) != len(amount):
        logger.error("Each --to needs a matching --amount")
        raise typer.Exit(1)
    try:
        return [TransferRequest(address=a, amount=Decimal(n)) for a, n in zip(to, amount)]
    except (ArithmeticError, ValueError) as e:
        logger.error(f"Invalid transfer request: {e}")
        raise typer.Exit(1)


@app.command()
def config(
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show the protocol configuration."""
    _echo_json(_run(lambda service: service.config(), log_level))


@app.command()
def balance(
    addresses: list[str] = typer.Argument(..., help="One or more addresses"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show token balances."""
    _echo_json(_run(lambda service: service.balances(addresses), log_level))


@app.command()
def transfer(
    to: list[str] = typer.Option(..., "--to", "-t", help="Recipient address (repeatable)"),
    amount: list[str] = typer.Option(..., "--amount", "-a", help="Amount in tokens (repeatable)"),
    wif: str = typer.Option(..., "--wif", envvar="MNEE_WIF", help="Sender private key (WIF)"),
    change_address: str | None = typer.Option(None, "--change-address"),
    no_broadcast: bool = typer.Option(
        False, "--no-broadcast", help="Only sign; print the holder-signed transaction"
    ),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Send tokens to one or more recipients."""
    requests = _transfer_requests(to, amount)
    result = _run(
        lambda service: service.transfer(
            requests, wif, broadcast=not no_broadcast, change_address=change_address
        ),
        log_level,
    )
    _echo_json(result.to_dict())
    if not result.ok:
        raise typer.Exit(1)


@app.command()
def validate(
    rawtx: str = typer.Argument(..., help="Raw transaction hex"),
    to: list[str] = typer.Option([], "--to", "-t", help="Expected recipient (repeatable)"),
    amount: list[str] = typer.Option([], "--amount", "-a", help="Expected amount (repeatable)"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Check a token transaction, optionally against the intended transfers."""
    requests = _transfer_requests(to, amount) if to or amount else None
    is_valid = _run(lambda service: service.validate_tx(rawtx, requests), log_level)
    _echo_json({"valid": is_valid})
    if not is_valid:
        raise typer.Exit(1)


@app.command()
def parse(
    txid: str | None = typer.Argument(None, help="Transaction id"),
    raw: str | None = typer.Option(None, "--raw", help="Raw transaction hex instead of a txid"),
    include_raw: bool = typer.Option(False, "--include-raw"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Parse a token transaction."""
    if (txid is None) == (raw is None):
        logger.error("Give either a TXID or --raw")
        raise typer.Exit(1)

    if raw is not None:
        parsed = _run(lambda service: service.parse_tx_from_raw(raw, include_raw), log_level)
    else:
        parsed = _run(lambda service: service.parse_tx(txid, include_raw), log_level)
    _echo_json(parsed)


@app.command()
def history(
    address: str = typer.Argument(..., help="Address to inspect"),
    from_score: float = typer.Option(0, "--from-score"),
    limit: int = typer.Option(DEFAULT_HISTORY_LIMIT, "--limit", min=1),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Show recent token history for an address."""
    _echo_json(
        _run(lambda service: service.recent_tx_history(address, from_score, limit), log_level)
    )


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
