import asyncio

from polymarket_copy_trader.polling import PollingDetector, poll_interval_for


class DummySource:
    def __init__(self, rows: dict | None = None, failing: set | None = None) -> None:
        self.rows = rows or {}
        self.failing = failing or set()
        self.calls = []

    async def get_activity(self, user, *, type="TRADE", start=None, limit=100):
        self.calls.append((user, type, start, limit))
        if user in self.failing:
            raise RuntimeError("boom")
        return list(self.rows.get(user, []))


class Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_poll_interval_tiers() -> None:
    assert poll_interval_for(1) == 5.0
    assert poll_interval_for(10) == 5.0
    assert poll_interval_for(11) == 7.0
    assert poll_interval_for(30) == 7.0
    assert poll_interval_for(31) == 10.0


def test_poll_once_merges_and_sorts_descending() -> None:
    source = DummySource(
        rows={
            "0xa": [{"transactionHash": "1", "timestamp": 100}, {"transactionHash": "2", "timestamp": 300}],
            "0xb": [{"transactionHash": "3", "timestamp": 200}],
        }
    )
    detector = PollingDetector(source, lambda batch: None, clock=Clock(1000))
    detector.set_addresses(["0xA", "0xb"])

    batch = asyncio.run(detector.poll_once())

    assert [r["transactionHash"] for r in batch] == ["2", "3", "1"]
    assert {c[0] for c in source.calls} == {"0xa", "0xb"}
    assert all(c[1] == "TRADE" and c[3] == 100 for c in source.calls)


def test_one_failing_address_does_not_abort_round() -> None:
    source = DummySource(rows={"0xb": [{"transactionHash": "x", "timestamp": 1}]}, failing={"0xa"})
    detector = PollingDetector(source, lambda batch: None, clock=Clock(1000))
    detector.set_addresses(["0xa", "0xb"])

    batch = asyncio.run(detector.poll_once())

    assert [r["transactionHash"] for r in batch] == ["x"]


def test_rolling_start_keeps_overlap_window() -> None:
    clock = Clock(1000)
    source = DummySource()
    detector = PollingDetector(source, lambda batch: None, overlap_seconds=10, clock=clock)
    detector.set_addresses(["0xa"])

    nows = [1005, 1100, 1103, 1200]
    for now in nows:
        clock.now = now
        asyncio.run(detector.poll_once())

    starts = [c[2] for c in source.calls]
    assert starts == [1000, 1000, 1090, 1093]
    # Every tick re-reads the trailing 10s of the previous tick (or all of it when shorter).
    for prev_now, prev_start, start in zip(nows, starts, starts[1:]):
        assert prev_now - start >= min(10, prev_now - prev_start)
    assert detector.last_check == 1190


def test_tick_hands_batch_to_callback() -> None:
    received = []
    source = DummySource(rows={"0xa": [{"transactionHash": "t", "timestamp": 5}]})
    detector = PollingDetector(source, received.append, clock=Clock(1000))
    detector.set_addresses(["0xa"])

    asyncio.run(detector.tick())

    assert received == [[{"transactionHash": "t", "timestamp": 5}]]
    assert detector.ticks == 1


def test_start_and_stop_transition_state() -> None:
    async def scenario() -> tuple:
        detector = PollingDetector(DummySource(), lambda batch: None)
        detector.set_addresses([f"0x{i}" for i in range(12)])
        detector.start()
        running = detector.state, detector.interval
        detector.stop()
        return running, detector.state

    (running_state, interval), stopped_state = asyncio.run(scenario())
    assert running_state == "running"
    assert interval == 7.0
    assert stopped_state == "idle"


def test_no_addresses_means_no_requests() -> None:
    source = DummySource()
    detector = PollingDetector(source, lambda batch: None)
    assert asyncio.run(detector.poll_once()) == []
    assert source.calls == []


def test_merge_orders_mixed_second_and_millisecond_timestamps() -> None:
    source = DummySource(
        rows={
            "0xa": [{"transactionHash": "ms", "timestamp": 1730000000000}],
            "0xb": [
                {"transactionHash": "s", "timestamp": 1730000100},
                {"transactionHash": "bad", "timestamp": "?"},
            ],
        }
    )
    detector = PollingDetector(source, lambda batch: None, clock=Clock(1730000300))
    detector.set_addresses(["0xa", "0xb"])

    batch = asyncio.run(detector.poll_once())

    assert [r["transactionHash"] for r in batch] == ["s", "ms", "bad"]
