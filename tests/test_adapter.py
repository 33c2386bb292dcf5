import asyncio
import random

from venuebook.core.types import ConnectionState
from venuebook.venue.adapter import VenueAdapter
from venuebook.venue.bybit import BybitCodec
from venuebook.venue.deribit import DeribitCodec
from venuebook.venue.mock import MockConnection, MockConnector, deribit_book_frame, okx_book_frame
from venuebook.venue.okx import OKXCodec

SYMBOL = "BTC-USDT"


async def _until(predicate, timeout=2.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


def _adapter(connector, got, states=None, codec=None, **kw):
    kw.setdefault("reconnect_delay", 0.01)
    kw.setdefault("heartbeat_interval", 0)
    return VenueAdapter(
        codec or OKXCodec(),
        SYMBOL,
        got.append,
        on_state=states.append if states is not None else None,
        connector=connector,
        rng=random.Random(0),
        **kw,
    )


def test_adapter_subscribes_and_publishes_snapshots():
    frame = okx_book_frame(SYMBOL, [(100, 2), (99, 3)], [(101, 1), (102, 4)], ts=123)
    connector = MockConnector([MockConnection([frame], hold_open=True)])
    got = []

    async def main():
        adapter = _adapter(connector, got)
        adapter.start()
        await _until(lambda: got)
        assert adapter.state == ConnectionState.SUBSCRIBED
        await adapter.aclose()
        assert adapter.state == ConnectionState.DISCONNECTED

    asyncio.run(main())
    snap = got[0]
    assert snap.venue.value == "OKX" and snap.symbol == SYMBOL
    assert snap.orderbook.timestamp == 123
    assert connector.connections[0].sent == OKXCodec().subscribe_messages(SYMBOL)


def test_book_without_venue_ticker_gets_synthetic_ticker():
    frame = okx_book_frame(SYMBOL, [(100, 2)], [(101, 1)])
    connector = MockConnector([MockConnection([frame], hold_open=True)])
    got = []

    async def main():
        adapter = _adapter(connector, got)
        adapter.start()
        await _until(lambda: got)
        await adapter.aclose()

    asyncio.run(main())
    ticker = got[0].ticker
    assert ticker.synthetic
    assert ticker.last_price == 101
    assert 101 <= ticker.high_24h <= 101 * 1.05
    assert 101 * 0.95 <= ticker.low_24h <= 101
    assert 0 <= ticker.volume_24h <= 1_000_000
    assert abs(ticker.change_24h) <= 101 * 0.025


def test_venue_ticker_replaces_synthetic_one():
    book = okx_book_frame(SYMBOL, [(100, 2)], [(101, 1)])
    ticker = {
        "arg": {"channel": "tickers", "instId": SYMBOL},
        "data": [{"last": "100.5", "open24h": "100", "vol24h": "2500", "ts": "9"}],
    }
    connector = MockConnector([MockConnection([book, ticker, book], hold_open=True)])
    got = []

    async def main():
        adapter = _adapter(connector, got)
        adapter.start()
        await _until(lambda: len(got) >= 3)
        await adapter.aclose()

    asyncio.run(main())
    assert got[0].ticker.synthetic
    assert not got[1].ticker.synthetic and got[1].ticker.last_price == 100.5
    assert got[1].orderbook is got[0].orderbook
    assert got[2].ticker.volume_24h == 2500


def test_malformed_frame_is_dropped_and_stream_continues():
    bad = {"arg": {"channel": "books5"}, "data": [{"bids": "oops", "asks": []}]}
    good = okx_book_frame(SYMBOL, [(100, 2)], [(101, 1)])
    connector = MockConnector([MockConnection([bad, good], hold_open=True)])
    got, states = [], []

    async def main():
        adapter = _adapter(connector, got, states)
        adapter.start()
        await _until(lambda: got)
        assert adapter.state == ConnectionState.SUBSCRIBED
        await adapter.aclose()

    asyncio.run(main())
    assert len(got) == 1
    assert ConnectionState.RECONNECTING not in states
    assert connector.attempts == 1


def test_reconnects_after_close_without_resubscribing():
    first = okx_book_frame(SYMBOL, [(100, 1)], [(101, 1)])
    second = okx_book_frame(SYMBOL, [(200, 1)], [(201, 1)])
    connector = MockConnector([MockConnection([first]), MockConnection([second], hold_open=True)])
    got, states = [], []

    async def main():
        adapter = _adapter(connector, got, states)
        adapter.start()
        await _until(lambda: len(got) >= 2)
        await adapter.aclose()

    asyncio.run(main())
    assert [s.orderbook.best_bid() for s in got] == [100, 200]
    assert states[:5] == [
        ConnectionState.CONNECTING,
        ConnectionState.SUBSCRIBED,
        ConnectionState.RECONNECTING,
        ConnectionState.CONNECTING,
        ConnectionState.SUBSCRIBED,
    ]
    assert connector.attempts == 2
    assert connector.connections[1].sent == OKXCodec().subscribe_messages(SYMBOL)


def test_fatal_venue_error_recycles_connection():
    error = {"event": "error", "code": "60018", "msg": "channel does not exist"}
    good = okx_book_frame(SYMBOL, [(100, 1)], [(101, 1)])
    connector = MockConnector([MockConnection([error, good]), MockConnection([good], hold_open=True)])
    got = []

    async def main():
        adapter = _adapter(connector, got)
        adapter.start()
        await _until(lambda: got)
        await adapter.aclose()

    asyncio.run(main())
    assert connector.attempts == 2
    assert len(got) == 1


def test_connect_failures_retry_until_limit():
    connector = MockConnector([OSError("refused"), OSError("refused"), OSError("refused")])
    got, states = [], []

    async def main():
        adapter = _adapter(connector, got, states, max_reconnect_attempts=1)
        adapter.start()
        await _until(lambda: not adapter.running)
        return adapter

    adapter = asyncio.run(main())
    assert connector.attempts == 2
    assert adapter.state == ConnectionState.DISCONNECTED
    assert states.count(ConnectionState.RECONNECTING) == 1


def test_stop_during_backoff_cancels_pending_retry():
    connector = MockConnector([OSError("refused")])
    got = []

    async def main():
        adapter = _adapter(connector, got, reconnect_delay=30)
        adapter.start()
        await _until(lambda: adapter.state == ConnectionState.RECONNECTING)
        adapter.stop()
        await asyncio.sleep(0.05)
        assert not adapter.running
        return adapter

    adapter = asyncio.run(main())
    assert adapter.state == ConnectionState.DISCONNECTED
    assert connector.attempts == 1


def test_heartbeat_is_sent_while_subscribed():
    conn = MockConnection([], hold_open=True)
    connector = MockConnector([conn])
    got = []

    async def main():
        adapter = _adapter(connector, got, codec=BybitCodec(), heartbeat_interval=0.01)
        adapter.start()
        await _until(lambda: '{"op": "ping"}' in conn.sent)
        await adapter.aclose()

    asyncio.run(main())
    assert not conn.open


def test_out_of_range_timestamp_is_dropped_and_stream_continues():
    bad = okx_book_frame(SYMBOL, [(100, 2)], [(101, 1)])
    bad["data"][0]["ts"] = "1e400"
    good = okx_book_frame(SYMBOL, [(100, 2)], [(101, 1)], ts=7)
    connector = MockConnector([MockConnection([bad, good], hold_open=True)])
    got, states = [], []

    async def main():
        adapter = _adapter(connector, got, states)
        adapter.start()
        await _until(lambda: got)
        assert adapter.running
        assert adapter.state == ConnectionState.SUBSCRIBED
        await adapter.aclose()

    asyncio.run(main())
    assert [s.orderbook.timestamp for s in got] == [7]
    assert ConnectionState.RECONNECTING not in states
    assert connector.attempts == 1


def test_deribit_string_error_recycles_connection():
    symbol = "BTC-PERPETUAL"
    good = deribit_book_frame(symbol, [(100, 1)], [(101, 1)])
    connector = MockConnector(
        [MockConnection([{"error": "boom"}, good]), MockConnection([good], hold_open=True)]
    )
    got, states = [], []

    async def main():
        adapter = VenueAdapter(
            DeribitCodec(),
            symbol,
            got.append,
            on_state=states.append,
            connector=connector,
            reconnect_delay=0.01,
            heartbeat_interval=0,
            rng=random.Random(0),
        )
        adapter.start()
        await _until(lambda: got)
        assert adapter.running
        await adapter.aclose()

    asyncio.run(main())
    assert connector.attempts == 2
    assert len(got) == 1
    assert ConnectionState.RECONNECTING in states


def test_unexpected_codec_failure_drops_frame():
    class FlakyCodec(OKXCodec):
        calls = 0

        def parse(self, message):
            FlakyCodec.calls += 1
            if FlakyCodec.calls == 1:
                raise KeyError("data")
            return super().parse(message)

    frame = okx_book_frame(SYMBOL, [(100, 2)], [(101, 1)])
    connector = MockConnector([MockConnection([frame, frame], hold_open=True)])
    got = []

    async def main():
        adapter = _adapter(connector, got, codec=FlakyCodec())
        adapter.start()
        await _until(lambda: got)
        await adapter.aclose()

    asyncio.run(main())
    assert len(got) == 1
    assert connector.attempts == 1


def test_unexpected_session_failure_reconnects():
    frame = okx_book_frame(SYMBOL, [(100, 2)], [(101, 1)])
    connector = MockConnector([MockConnection([frame]), MockConnection([frame], hold_open=True)])
    got, states = [], []

    def on_snapshot(snap):
        got.append(snap)
        if len(got) == 1:
            raise RuntimeError("consumer blew up")

    async def main():
        adapter = VenueAdapter(
            OKXCodec(),
            SYMBOL,
            on_snapshot,
            on_state=states.append,
            connector=connector,
            reconnect_delay=0.01,
            heartbeat_interval=0,
            rng=random.Random(0),
        )
        adapter.start()
        await _until(lambda: len(got) >= 2)
        assert adapter.running
        await adapter.aclose()

    asyncio.run(main())
    assert connector.attempts == 2
    assert ConnectionState.RECONNECTING in states
