import pytest

from shadowshare import codec, roles
from shadowshare.errors import DivisionByZero, TransportError
from shadowshare.protocol import (
    ShareAck,
    ShareDelivery,
    ShareRequest,
    decode_message,
    encode_message,
)
from shadowshare.roles import Collector, CollectorState, Dealer, DealerState
from shadowshare.shamir import split
from shadowshare.topic import derive_topic
from shadowshare.transport import MemoryHub

MY_SECRET = b"my-secret"
TOPIC = derive_topic("vault")


class FakeConnection:
    def __init__(self, peer_id="peer", broken=False):
        self.peer_id = peer_id
        self.broken = broken
        self.sent = []

    def write(self, data):
        if self.broken:
            raise TransportError("link down")
        self.sent.append(decode_message(data))


class Recorder:
    """Peer handler that only remembers what it was sent."""

    def __init__(self):
        self.received = []
        self.connections = []

    def connection_made(self, conn):
        self.connections.append(conn)

    def data_received(self, conn, data):
        self.received.append(decode_message(data))

    def connection_lost(self, conn):
        pass


def _delivery(share, *, session="vault", total=5, threshold=3):
    return encode_message(
        ShareDelivery(
            session=session,
            share_index=share.x,
            total_shares=total,
            threshold=threshold,
            share=codec.encode(share),
        )
    )


# ---------------------------------------------------------------------------
# Dealer
# ---------------------------------------------------------------------------


def test_dealer_assigns_one_share_per_connection_in_order():
    hub = MemoryHub()
    shares = split(MY_SECRET, 3, 2)
    dealer = Dealer(shares, session="vault", threshold=2)
    dealer.start()
    hub.swarm(dealer, name="dealer").join(TOPIC, server=True, client=False)

    peers = [Recorder() for _ in range(4)]
    for i, peer in enumerate(peers):
        hub.swarm(peer, name=f"peer{i}").join(TOPIC, server=False, client=True)
    hub.run_until_idle()

    deliveries = [[m for m in peer.received if isinstance(m, ShareDelivery)] for peer in peers]
    assert [d[0].share_index for d in deliveries[:3]] == [1, 2, 3]
    assert deliveries[3] == []
    assert all(len(peer.connections) == 1 for peer in peers)
    first = deliveries[0][0]
    assert (first.session, first.total_shares, first.threshold) == ("vault", 3, 2)
    assert codec.decode(first.share) == shares[0]
    assert dealer.state is DealerState.COMPLETE
    assert dealer.distributed == 3


def test_dealer_ignores_other_topics():
    hub = MemoryHub()
    dealer = Dealer(split(MY_SECRET, 2, 2), session="vault", threshold=2)
    dealer.start()
    hub.swarm(dealer).join(TOPIC, server=True, client=False)
    stranger = Recorder()
    hub.swarm(stranger).join(derive_topic("other"), server=False, client=True)
    hub.run_until_idle()
    assert stranger.connections == []
    assert dealer.distributed == 0


def test_dealer_failed_send_consumes_slot():
    dealer = Dealer(split(MY_SECRET, 3, 2), session="vault", threshold=2)
    dealer.start()
    lost = FakeConnection("lost", broken=True)
    ok = FakeConnection("ok")
    dealer.connection_made(lost)
    dealer.connection_made(ok)
    assert dealer.distributed == 2
    assert [m.share_index for m in ok.sent] == [2]


def test_dealer_waits_for_start():
    dealer = Dealer(split(MY_SECRET, 2, 2), session="vault", threshold=2)
    conn = FakeConnection()
    dealer.connection_made(conn)
    assert dealer.state is DealerState.IDLE
    assert conn.sent == []


def test_dealer_records_acknowledgements(audit_dir):
    dealer = Dealer(split(MY_SECRET, 2, 2), session="vault", threshold=2)
    dealer.start()
    conn = FakeConnection()
    dealer.data_received(conn, encode_message(ShareAck(share_index=1)))
    dealer.data_received(conn, encode_message(ShareRequest(session="vault")))
    dealer.data_received(conn, b"garbage")
    assert dealer.acknowledged == {1}
    assert dealer.distributed == 0
    assert any(audit_dir.glob("audit_*.json"))


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------


def test_collector_dedupes_and_reconstructs_on_third_unique_share():
    shares = {s.x: s for s in split(MY_SECRET, 5, 3)}
    recovered = []
    collector = Collector(session="vault", threshold=3, on_secret=recovered.append)
    collector.start()
    conn = FakeConnection()

    for index in (1, 2, 2):
        collector.data_received(conn, _delivery(shares[index]))
        assert recovered == []
    assert list(collector.held) == [1, 2]

    collector.data_received(conn, _delivery(shares[5]))
    assert list(collector.held) == [1, 2, 5]
    assert recovered == [MY_SECRET]
    assert collector.secret == MY_SECRET
    assert collector.state is CollectorState.COMPLETE
    assert [m.share_index for m in conn.sent] == [1, 2, 5]
    assert all(isinstance(m, ShareAck) for m in conn.sent)


def test_collector_counts_own_share():
    shares = split(MY_SECRET, 5, 3)
    recovered = []
    collector = Collector(session="vault", threshold=3, own_share=shares[3], on_secret=recovered.append)
    collector.start()
    conn = FakeConnection()
    collector.data_received(conn, _delivery(shares[3]))
    collector.data_received(conn, _delivery(shares[0]))
    assert recovered == []
    collector.data_received(conn, _delivery(shares[1]))
    assert recovered == [MY_SECRET]
    assert list(collector.held) == [4, 1, 2]


def test_collector_ignores_foreign_and_broken_messages():
    shares = split(MY_SECRET, 5, 3)
    collector = Collector(session="vault", threshold=3)
    collector.start()
    conn = FakeConnection()

    collector.data_received(conn, _delivery(shares[0], session="elsewhere"))
    collector.data_received(conn, b"{not json")
    collector.data_received(conn, b'{"v":1,"type":"gossip"}')
    collector.data_received(conn, encode_message(ShareAck(share_index=1)))
    collector.data_received(
        conn,
        encode_message(
            ShareDelivery(session="vault", share_index=1, total_shares=5, threshold=3, share="01:abc")
        ),
    )
    assert collector.held == {}
    assert conn.sent == []

    collector.data_received(conn, _delivery(shares[0]))
    short = split(b"short", 5, 3)[1]
    collector.data_received(conn, _delivery(short))
    assert list(collector.held) == [1]


def test_collector_requests_shares_on_connect():
    collector = Collector(session="vault", threshold=2)
    conn = FakeConnection()
    collector.connection_made(conn)
    assert conn.sent == []

    collector.start()
    collector.connection_made(conn)
    assert conn.sent == [ShareRequest(session="vault")]
    collector.connection_made(FakeConnection(broken=True))


def test_collector_ignores_events_after_completion():
    shares = split(MY_SECRET, 4, 2)
    recovered = []
    collector = Collector(session="vault", threshold=2, on_secret=recovered.append)
    collector.start()
    conn = FakeConnection()
    for share in shares:
        collector.data_received(conn, _delivery(share, total=4, threshold=2))
    assert recovered == [MY_SECRET]
    assert list(collector.held) == [1, 2]


def test_collector_failure_is_terminal(monkeypatch):
    def boom(shares, k):
        raise DivisionByZero("colliding indices")

    monkeypatch.setattr(roles, "combine", boom)
    failures = []
    collector = Collector(session="vault", threshold=2, on_failure=failures.append)
    collector.start()
    conn = FakeConnection()
    for share in split(MY_SECRET, 3, 2):
        collector.data_received(conn, _delivery(share, total=3, threshold=2))
    assert collector.state is CollectorState.FAILED
    assert len(failures) == 1
    assert isinstance(collector.error, DivisionByZero)
    assert list(collector.held) == [1, 2]


# ---------------------------------------------------------------------------
# Dealer and collector over the in-process hub
# ---------------------------------------------------------------------------


def test_memory_hub_end_to_end():
    hub = MemoryHub()
    shares = split(MY_SECRET, 5, 3)
    dealer = Dealer(shares, session="vault", threshold=3)
    dealer.start()
    hub.swarm(dealer, name="dealer").join(TOPIC, server=True, client=False)

    recovered = []
    collector = Collector(session="vault", threshold=3, own_share=shares[4], on_secret=recovered.append)
    collector.start()
    # two links from the same collector: one share each
    hub.swarm(collector, name="collector-a").join(TOPIC, server=False, client=True)
    hub.swarm(collector, name="collector-b").join(TOPIC, server=False, client=True)
    hub.run_until_idle()

    assert recovered == [MY_SECRET]
    assert list(collector.held) == [5, 1, 2]
    assert dealer.acknowledged == {1, 2}
    assert dealer.state is DealerState.AWAITING_PEERS


def test_memory_connection_close_and_broken_write():
    hub = MemoryHub()
    left, right = Recorder(), Recorder()
    left_swarm = hub.swarm(left)
    left_swarm.join(TOPIC, server=True, client=False)
    hub.swarm(right).join(TOPIC, server=False, client=True)
    hub.run_until_idle()

    conn = left.connections[0]
    conn.broken = True
    with pytest.raises(TransportError):
        conn.write(b"{}")
    conn.broken = False
    left_swarm.destroy()
    hub.run_until_idle()
    with pytest.raises(TransportError):
        conn.write(b"{}")
    with pytest.raises(TransportError):
        right.connections[0].write(b"{}")
