# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""Command line interface: split and distribute, or collect and reconstruct."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Sequence

import click

from shadowshare import codec, shamir
from shadowshare.audit import record_event
from shadowshare.errors import EmptySecret, MalformedShare, ShareError, TransportError
from shadowshare.policy import clamp_parameters, policy
from shadowshare.roles import Collector, Dealer
from shadowshare.shamir import Share
from shadowshare.topic import derive_topic
from shadowshare.transport import TcpSwarm, parse_address

_logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else policy.log_level,
        format="[%(asctime)s] %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )


def _render_secret(secret: bytes) -> str:
    try:
        return secret.decode("utf-8")
    except UnicodeDecodeError:
        return f"hex:{secret.hex()}"


def _decode_shares(texts: Iterable[str]) -> List[Share]:
    shares: List[Share] = []
    for text in texts:
        try:
            shares.append(codec.decode(text))
        except MalformedShare as exc:
            _logger.warning("Skipping share %r: %s", text, exc)
    return shares


async def _run_dealer(dealer: Dealer, topic: bytes, host: str, port: int) -> None:
    swarm = TcpSwarm(dealer, host=host, port=port)
    dealer.start()
    discovery = swarm.join(topic, server=True, client=False)
    try:
        await discovery.flushed()
        click.echo("Ctrl+C to stop (shares printed above for manual use)")
        await asyncio.Event().wait()
    finally:
        await swarm.destroy()


async def _run_collector(
    collector: Collector,
    topic: bytes,
    *,
    host: str,
    port: int,
    peers: Sequence[tuple[str, int]],
    listen: bool,
) -> bytes:
    done: asyncio.Future[bytes] = asyncio.get_running_loop().create_future()

    def _on_secret(secret: bytes) -> None:
        if not done.done():
            done.set_result(secret)

    def _on_failure(exc: ShareError) -> None:
        if not done.done():
            done.set_exception(exc)

    collector.on_secret = _on_secret
    collector.on_failure = _on_failure
    swarm = TcpSwarm(collector, host=host, port=port, peers=peers)
    collector.start()
    try:
        if not done.done():
            discovery = swarm.join(topic, server=listen, client=bool(peers))
            await discovery.flushed()
            if not listen and discovery.connected == 0 and not done.done():
                raise TransportError("No peer reachable")
        return await done
    finally:
        await swarm.destroy()


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Log protocol details.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """K-of-N secret sharing over GF(256) with peer distribution."""

    _configure_logging(verbose)
    if ctx.invoked_subcommand is not None:
        return
    click.echo("Choose mode:\n  [1] split\n  [2] reconstruct\n  [q] quit")
    choice = click.prompt("Choice", default="q", show_default=False).strip().lower()
    if choice in ("1", "split"):
        ctx.invoke(split)
    elif choice in ("2", "reconstruct"):
        ctx.invoke(reconstruct)
    else:
        click.echo("Goodbye.")


@main.command()
@click.option("--n", "total", type=int, default=policy.total_shares, show_default=True, help="Number of shares.")
@click.option("--k", "threshold", type=int, default=policy.threshold, show_default=True, help="Shares needed to reconstruct.")
@click.option("--session", default=policy.session, show_default=True)
@click.option("--host", default=policy.host, show_default=True, help="Address to listen on.")
@click.option("--port", type=int, default=policy.port, show_default=True)
@click.option("--offline", is_flag=True, help="Print the shares without distributing them.")
def split(total: int, threshold: int, session: str, host: str, port: int, offline: bool) -> None:
    """Split a secret and hand one share to each connecting peer."""

    total, threshold = clamp_parameters(total, threshold)
    secret = click.prompt("Enter your secret", hide_input=True, default="", show_default=False)
    try:
        shares = shamir.split(secret.strip().encode("utf-8"), total, threshold)
    except EmptySecret:
        raise click.ClickException("Empty secret, aborting.")
    record_event(
        "split.created",
        details={"total_shares": total, "threshold": threshold, "length": len(shares[0].y)},
    )

    click.echo(f"\nSecret split into {total} shares ({threshold}-of-{total} to reconstruct):\n")
    for share in shares:
        click.echo(f"  Share {share.x}/{total}:")
        click.echo(f"  {codec.encode(share)}\n")
    click.echo(f"Distribute each share to a different peer. Any {threshold} of {total} shares can reconstruct.")
    if offline:
        return

    dealer = Dealer(shares, session=session, threshold=threshold)
    try:
        asyncio.run(_run_dealer(dealer, derive_topic(session), host, port))
    except KeyboardInterrupt:
        click.echo(f"Stopped after distributing {dealer.distributed}/{total} shares.")
    except TransportError as exc:
        raise click.ClickException(str(exc))


@main.command()
@click.option("--k", "threshold", type=int, default=policy.threshold, show_default=True, help="Shares needed to reconstruct.")
@click.option("--session", default=policy.session, show_default=True)
@click.option("--share", "own_share", default=None, help="Your own share (XX:hex).")
@click.option("--peer", "peers", multiple=True, help="Peer address HOST:PORT to dial; repeatable.")
@click.option("--host", default=policy.host, show_default=True, help="Address to listen on.")
@click.option("--port", type=int, default=policy.port, show_default=True)
@click.option("--listen/--no-listen", default=False, show_default=True, help="Accept inbound peers.")
def reconstruct(
    threshold: int,
    session: str,
    own_share: str | None,
    peers: Sequence[str],
    host: str,
    port: int,
    listen: bool,
) -> None:
    """Collect shares from peers and recover the secret."""

    threshold = max(2, threshold)
    try:
        addresses = [parse_address(peer, policy.port) for peer in peers]
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--peer")
    if not addresses and not listen:
        raise click.UsageError("Give at least one --peer or use --listen.")

    loaded = _decode_shares([own_share]) if own_share else []
    collector = Collector(session=session, threshold=threshold, own_share=loaded[0] if loaded else None)
    try:
        secret = asyncio.run(
            _run_collector(
                collector,
                derive_topic(session),
                host=host,
                port=port,
                peers=addresses,
                listen=listen,
            )
        )
    except KeyboardInterrupt:
        click.echo(f"Cancelled with {len(collector.held)}/{threshold} shares.")
        return
    except ShareError as exc:
        raise click.ClickException(f"Reconstruction failed: {exc}")
    except TransportError as exc:
        raise click.ClickException(str(exc))

    click.echo("\nSECRET RECONSTRUCTED\n")
    click.echo(f"  {_render_secret(secret)}\n")
    click.echo(f"Used {threshold} of {len(collector.held)} held shares (threshold: {threshold})")


@main.command()
@click.option("--k", "threshold", type=int, default=policy.threshold, show_default=True, help="Shares needed to reconstruct.")
@click.argument("shares", nargs=-1, required=True)
def combine(threshold: int, shares: Sequence[str]) -> None:
    """Reconstruct offline from share strings."""

    decoded = _decode_shares(shares)
    try:
        secret = shamir.combine(decoded, threshold)
    except ShareError as exc:
        raise click.ClickException(f"Reconstruction failed: {exc}")
    click.echo(_render_secret(secret))


@main.command()
@click.argument("session")
@click.option("--suffix", default=None, help="Topic suffix (defaults to the configured one).")
def topic(session: str, suffix: str | None) -> None:
    """Print the rendezvous topic for SESSION."""

    click.echo(derive_topic(session, suffix=suffix).hex())


if __name__ == "__main__":
    main()
