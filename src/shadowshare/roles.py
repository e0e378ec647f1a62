# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""Dealer and collector state machines for share distribution.

Both classes implement the transport handler surface (``connection_made``,
``data_received``, ``connection_lost``) and are driven one event at a time
by a single loop, so they hold plain in-memory state without locking.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Dict, Optional, Sequence

from shadowshare import codec
from shadowshare.audit import record_event
from shadowshare.errors import MalformedShare, ProtocolError, ShareError, TransportError
from shadowshare.protocol import (
    ShareAck,
    ShareDelivery,
    ShareRequest,
    decode_message,
    encode_message,
)
from shadowshare.shamir import Share, combine
from shadowshare.transport import Connection

_logger = logging.getLogger(__name__)


class DealerState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_PEERS = "awaiting_peers"
    COMPLETE = "complete"


class CollectorState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_SHARES = "awaiting_shares"
    COMPLETE = "complete"
    FAILED = "failed"


class Dealer:
    """Hand one share to each newly connected peer until all are assigned.

    Delivery is at-most-once: a share whose write fails is not offered to
    another peer.
    """

    def __init__(self, shares: Sequence[Share], *, session: str, threshold: int) -> None:
        self.shares = list(shares)
        self.session = session
        self.threshold = threshold
        self.distributed = 0
        self.acknowledged: set[int] = set()
        self.state = DealerState.IDLE

    @property
    def total_shares(self) -> int:
        return len(self.shares)

    def start(self) -> None:
        self.state = DealerState.AWAITING_PEERS if self.shares else DealerState.COMPLETE
        _logger.info(
            "Waiting for %d peers on session %r (%d-of-%d)",
            self.total_shares,
            self.session,
            self.threshold,
            self.total_shares,
        )

    def connection_made(self, conn: Connection) -> None:
        if self.state is not DealerState.AWAITING_PEERS:
            _logger.debug("Peer %s connected; no shares left to assign", conn.peer_id)
            return

        share = self.shares[self.distributed]
        self.distributed += 1
        message = ShareDelivery(
            session=self.session,
            share_index=share.x,
            total_shares=self.total_shares,
            threshold=self.threshold,
            share=codec.encode(share),
        )
        try:
            conn.write(encode_message(message))
        except TransportError as exc:
            _logger.warning("Share %d to peer %s lost: %s", share.x, conn.peer_id, exc)
            record_event(
                "dealer.delivery_failed",
                details={"share_index": share.x, "peer": conn.peer_id},
            )
        else:
            _logger.info("Share %d/%d -> peer %s", share.x, self.total_shares, conn.peer_id)
            record_event(
                "dealer.share_delivered",
                details={"share_index": share.x, "peer": conn.peer_id},
            )

        if self.distributed >= self.total_shares:
            self.state = DealerState.COMPLETE
            _logger.info(
                "All %d shares distributed; secret is protected by a %d-of-%d threshold",
                self.total_shares,
                self.threshold,
                self.total_shares,
            )
            record_event(
                "dealer.complete",
                details={"total_shares": self.total_shares, "threshold": self.threshold},
            )

    def data_received(self, conn: Connection, data: bytes) -> None:
        try:
            message = decode_message(data)
        except ProtocolError as exc:
            _logger.debug("Ignoring message from %s: %s", conn.peer_id, exc)
            return
        if isinstance(message, ShareAck):
            self.acknowledged.add(message.share_index)
            _logger.info("Peer %s confirmed share %d", conn.peer_id, message.share_index)
            record_event(
                "dealer.share_acknowledged",
                details={"share_index": message.share_index, "peer": conn.peer_id},
            )

    def connection_lost(self, conn: Connection) -> None:
        _logger.debug("Peer %s disconnected", conn.peer_id)


class Collector:
    """Gather shares from peers until ``threshold`` distinct indices are held.

    The first ``threshold`` shares in insertion order are combined; the
    recovered secret is passed to ``on_secret``. A failed reconstruction is
    passed to ``on_failure``. Both states are final.
    """

    def __init__(
        self,
        *,
        session: str,
        threshold: int,
        own_share: Share | None = None,
        on_secret: Optional[Callable[[bytes], None]] = None,
        on_failure: Optional[Callable[[ShareError], None]] = None,
    ) -> None:
        self.session = session
        self.threshold = threshold
        self.on_secret = on_secret
        self.on_failure = on_failure
        self.held: Dict[int, Share] = {}
        self.secret: bytes | None = None
        self.error: ShareError | None = None
        self.state = CollectorState.IDLE
        if own_share is not None:
            self.held[own_share.x] = own_share
            _logger.info("Own share loaded (index %d)", own_share.x)

    @property
    def finished(self) -> bool:
        return self.state in (CollectorState.COMPLETE, CollectorState.FAILED)

    def start(self) -> None:
        self.state = CollectorState.AWAITING_SHARES
        _logger.info(
            "Listening on session %r, need %d shares (holding %d)",
            self.session,
            self.threshold,
            len(self.held),
        )
        self._check_threshold()

    def connection_made(self, conn: Connection) -> None:
        if self.state is not CollectorState.AWAITING_SHARES:
            return
        _logger.info("Peer %s connected [%d/%d shares]", conn.peer_id, len(self.held), self.threshold)
        try:
            conn.write(encode_message(ShareRequest(session=self.session)))
        except TransportError as exc:
            _logger.warning("Share request to %s failed: %s", conn.peer_id, exc)

    def data_received(self, conn: Connection, data: bytes) -> None:
        if self.state is not CollectorState.AWAITING_SHARES:
            return
        try:
            message = decode_message(data)
        except ProtocolError as exc:
            _logger.debug("Ignoring message from %s: %s", conn.peer_id, exc)
            return
        if not isinstance(message, ShareDelivery) or message.session != self.session:
            return

        try:
            share = codec.decode(message.share)
        except MalformedShare as exc:
            _logger.warning("Bad share from %s: %s", conn.peer_id, exc)
            return
        if share.x in self.held:
            return
        expected = self._payload_length()
        if expected is not None and len(share.y) != expected:
            _logger.warning(
                "Bad share from %s: payload of %d bytes, expected %d",
                conn.peer_id,
                len(share.y),
                expected,
            )
            return

        self.held[share.x] = share
        _logger.info(
            "Share %d/%d received [%d/%d needed]",
            share.x,
            message.total_shares,
            len(self.held),
            self.threshold,
        )
        record_event(
            "collector.share_received",
            details={"share_index": share.x, "peer": conn.peer_id, "held": len(self.held)},
        )
        try:
            conn.write(encode_message(ShareAck(share_index=share.x)))
        except TransportError as exc:
            _logger.warning("Acknowledgement to %s failed: %s", conn.peer_id, exc)
        self._check_threshold()

    def connection_lost(self, conn: Connection) -> None:
        _logger.debug("Peer %s disconnected", conn.peer_id)

    def _payload_length(self) -> int | None:
        for share in self.held.values():
            return len(share.y)
        return None

    def _check_threshold(self) -> None:
        if self.state is not CollectorState.AWAITING_SHARES or len(self.held) < self.threshold:
            return
        chosen = list(self.held.values())[: self.threshold]
        try:
            secret = combine(chosen, self.threshold)
        except ShareError as exc:
            self.state = CollectorState.FAILED
            self.error = exc
            _logger.error("Reconstruction failed: %s", exc)
            record_event("collector.failed", details={"reason": str(exc)})
            if self.on_failure is not None:
                self.on_failure(exc)
            return

        self.state = CollectorState.COMPLETE
        self.secret = secret
        record_event(
            "collector.reconstructed",
            details={"share_indices": [share.x for share in chosen], "threshold": self.threshold},
        )
        if self.on_secret is not None:
            self.on_secret(secret)


__all__ = ["Collector", "CollectorState", "Dealer", "DealerState"]
