"""
SmartWallet CLI — identity-backed ledger wallet from the terminal.

Commands:
    smartwallet login      Print the sign-in URL
    smartwallet callback   Finish sign-in with the redirect URL
    smartwallet status     Show login and activation state
    smartwallet address    Show the wallet address (or another user's)
    smartwallet balance    Show balances
    smartwallet utxos      List spendable outputs
    smartwallet send       Send funds to an address or email
    smartwallet logout     Forget the login and stored wallets
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any, Awaitable, Callable, Optional

import click

from .backend import BackendClient
from .config import WalletConfig
from .errors import SmartWalletError
from .ledger import PyCardanoToolkit
from .models import ConfirmationOutcome, TransactionRequest
from .oauth import GoogleOAuth
from .prover import ProverClient
from .session import SessionStore, WalletStore
from .storage import FileStore, ensure_private_dir
from .value import LOVELACE, ada_to_lovelace, format_ada
from .wallet import Wallet, WalletState


# ── Wiring ────────────────────────────────────────────────────────

class NotLoggedIn(Exception):
    pass


async def build_wallet(config: WalletConfig) -> Wallet:
    """Wallet wired to the configured services and the file stores under ``config.home``."""
    ensure_private_dir(config.home)
    backend = BackendClient(config.backend_url, api_key=config.api_key, timeout_seconds=config.timeout_seconds)
    prover = ProverClient(
        config.prover_url,
        timeout_seconds=config.timeout_seconds,
        padding_scheme=config.padding_scheme,
        key_selection=config.key_selection,
    )
    client_id, client_secret = config.google_client_id, config.google_client_secret
    if not client_id:
        credentials = await backend.credentials()
        client_id, client_secret = credentials.client_id, credentials.client_secret
    oauth = GoogleOAuth(client_id, client_secret or "", config.redirect_url, timeout_seconds=config.timeout_seconds)
    return Wallet(
        backend=backend,
        prover=prover,
        oauth=oauth,
        toolkit=PyCardanoToolkit(config.network),
        session=SessionStore(FileStore(config.home / "session.json")),
        storage=WalletStore(FileStore(config.home / "wallets.json")),
        config=config,
    )


async def _shutdown(wallet: Wallet) -> None:
    await wallet.close()
    for client in (wallet.backend, wallet.prover, wallet.oauth):
        aclose = getattr(client, "aclose", None)
        if aclose is not None:
            await aclose()
    wallet.session.close()
    wallet.storage.close()


async def _with_wallet(
    config: WalletConfig,
    action: Callable[[Wallet], Awaitable[Any]],
    require_login: bool,
) -> Any:
    wallet = await build_wallet(config)
    try:
        if require_login and not await wallet.resume():
            raise NotLoggedIn()
        return await action(wallet)
    finally:
        await _shutdown(wallet)


def _execute(action: Callable[[Wallet], Awaitable[Any]], require_login: bool = True) -> Any:
    config: WalletConfig = click.get_current_context().obj
    try:
        return asyncio.run(_with_wallet(config, action, require_login))
    except NotLoggedIn:
        click.echo("❌ Not logged in. Run `smartwallet login` first.", err=True)
        sys.exit(1)
    except SmartWalletError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)


def _format_amount(asset: str, amount: Any) -> str:
    return format_ada(amount) if asset == LOVELACE else f"{amount} {asset}"


# ── CLI ───────────────────────────────────────────────────────────

@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Log progress to stderr")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """SmartWallet — ledger wallets unlocked by your Google account."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        ctx.obj = WalletConfig.from_env()
    except ValueError as e:
        click.echo(f"❌ Invalid configuration: {e}", err=True)
        sys.exit(1)


@main.command()
def login():
    """Print the URL to sign in with."""
    async def action(wallet: Wallet) -> str:
        return wallet.login()

    url = _execute(action, require_login=False)
    click.echo("🔑 Open this URL to sign in, then run `smartwallet callback <redirect-url>`:")
    click.echo(f"   {url}")


@main.command()
@click.argument("url")
@click.option("--wait-proof", is_flag=True, help="Wait for the activation proof before returning")
def callback(url: str, wait_proof: bool):
    """Finish sign-in with the URL the browser was redirected to."""
    async def action(wallet: Wallet) -> tuple[WalletState, str]:
        state = await wallet.oauth_callback(url)
        wallet.save_login()
        if state == WalletState.READY_FRESH:
            await wallet.ensure_proof_requested()
            if wait_proof:
                click.echo("⏳ Computing activation proof...")
                await wallet.wait_for_proof()
        wallet.save_login()
        return state, await wallet.get_address()

    state, address = _execute(action, require_login=False)
    if state == WalletState.READY_ACTIVATED:
        click.echo("✅ Welcome back, wallet restored")
    else:
        click.echo("✅ New wallet created; it activates with its first transaction")
    click.echo(f"   Address: {address}")


@main.command()
def status():
    """Show login and activation state."""
    async def action(wallet: Wallet) -> dict:
        return {
            "user": wallet.get_user_id(),
            "state": wallet.state.value,
            "address": await wallet.get_address(),
            "proof": wallet.has_proof(),
            "on_chain": await wallet.is_initialized_on_chain() if wallet.is_activated() else False,
        }

    info = _execute(action)
    click.echo(f"👤 {info['user']}")
    click.echo(f"   State:     {info['state']}")
    click.echo(f"   Address:   {info['address']}")
    click.echo(f"   Proof:     {'ready' if info['proof'] else 'pending'}")
    if info["state"] == WalletState.READY_ACTIVATED.value:
        click.echo(f"   On-chain:  {'yes' if info['on_chain'] else 'not yet'}")


@main.command()
@click.argument("email", required=False)
def address(email: Optional[str]):
    """Show the wallet address, or the wallet address of EMAIL."""
    async def action(wallet: Wallet) -> str:
        if email:
            return await wallet.address_for_email(email)
        if not await wallet.resume():
            raise NotLoggedIn()
        return await wallet.get_address()

    click.echo(_execute(action, require_login=False))


@main.command()
def balance():
    """Show balances per asset."""
    async def action(wallet: Wallet):
        return await wallet.get_balance()

    balances = _execute(action)
    if not balances:
        click.echo("No funds.")
        return
    for asset, amount in sorted(balances.items()):
        click.echo(f"  {_format_amount(asset, amount)}")


@main.command()
def utxos():
    """List spendable outputs of the wallet."""
    async def action(wallet: Wallet):
        return await wallet.get_utxos()

    found = _execute(action)
    if not found:
        click.echo("No UTxOs.")
        return
    for utxo in found:
        assets = ", ".join(_format_amount(a, v) for a, v in sorted(utxo.value.items()))
        click.echo(f"  {utxo.ref}  {assets}")


@main.command()
@click.option("--to", "recipient", required=True, help="Recipient address, or email with --email")
@click.option("--amount", required=True, help="Amount in base units (lovelace for ADA)")
@click.option("--asset", default=LOVELACE, help="Asset id <policy-id>.<asset-name> (default: lovelace)")
@click.option("--ada", is_flag=True, help="Read --amount as ADA instead of lovelace")
@click.option("--email", "to_email", is_flag=True, help="Treat --to as an email address")
@click.option("--local", is_flag=True, help="Build the transaction locally from the signing key's own address")
@click.option("--wait", is_flag=True, help="Wait for the recipient to see the funds")
def send(recipient: str, amount: str, asset: str, ada: bool, to_email: bool, local: bool, wait: bool):
    """Send funds to an address or email."""
    try:
        if ada:
            if asset != LOVELACE:
                raise ValueError("--ada only applies to lovelace")
            amount = str(ada_to_lovelace(amount))
        if to_email:
            request = TransactionRequest.to_email(recipient, amount, asset)
        else:
            request = TransactionRequest.to_address(recipient, amount, asset)
    except (ValueError, ArithmeticError) as e:
        click.echo(f"❌ Invalid amount: {e}", err=True)
        sys.exit(1)

    async def action(wallet: Wallet):
        if local:
            result = await wallet.send_peer_to_peer(request)
        else:
            result = await wallet.send_transaction(request)
        wallet.save_login()
        outcome = await wallet.wait_for_confirmation() if wait else None
        return result, outcome

    result, outcome = _execute(action)
    click.echo(f"✅ Submitted {result.transaction_id}")
    click.echo(f"   To:        {result.recipient_address}")
    if result.activated_wallet:
        click.echo("   Wallet activated by this transaction")
    for failure in result.notifier_errors:
        click.echo(f"   ⚠️  {failure.email} was not notified: {failure.error}")
    if outcome is not None:
        click.echo(f"   Confirmation: {outcome.value}")
        if outcome != ConfirmationOutcome.SUCCESS:
            sys.exit(1)


@main.command()
def logout():
    """Forget the login and every stored wallet."""
    async def action(wallet: Wallet) -> None:
        wallet.logout()

    _execute(action, require_login=False)
    click.echo("👋 Logged out")
