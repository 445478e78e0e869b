"""
Tests for transaction service — Waiter pacing, finality polling, reject classification.
"""
import pytest

from df_minter.exceptions import FinalityTimeout, NotATargetContract, ReplicaRejectError, TransportError
from df_minter.models import RejectCode, RequestStatus
from df_minter.services.transaction_service import Waiter, classify_reject, wait_for_finality
from tests.conftest import CANISTER_ID, REQUEST_ID, FakeReplica


class ClockedReplica(FakeReplica):
    """FakeReplica that records the fake-clock time of each status poll."""

    def __init__(self, clock, **kwargs):
        super().__init__(**kwargs)
        self.clock = clock
        self.poll_times = []

    async def request_status(self, canister_id, request_id):
        self.poll_times.append(self.clock())
        return await super().request_status(canister_id, request_id)


class TestWaiter:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_delays_grow_from_throttle_to_cap(self, waiter, fake_clock):
        waiter.start()
        for _ in range(8):
            assert await waiter.wait() is True
        assert fake_clock.sleeps[:4] == [0.5, 0.75, 1.125, 1.6875]
        assert max(fake_clock.sleeps) == 5.0
        assert waiter.polls == 8

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_never_sleeps_less_than_throttle(self, fake_clock):
        w = Waiter(throttle=0.5, timeout=3.0, backoff=2.0, max_delay=5.0, sleep=fake_clock.sleep, clock=fake_clock)
        w.start()
        while await w.wait():
            pass
        assert all(s >= 0.5 for s in fake_clock.sleeps)
        assert fake_clock.now <= 3.0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stops_when_less_than_throttle_remains(self, fake_clock):
        w = Waiter(throttle=1.0, timeout=2.5, backoff=1.0, max_delay=1.0, sleep=fake_clock.sleep, clock=fake_clock)
        w.start()
        results = [await w.wait() for _ in range(4)]
        assert results == [True, True, False, False]
        assert fake_clock.now == 2.0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fixed_interval_when_backoff_is_one(self, fake_clock):
        w = Waiter(throttle=0.5, timeout=10.0, backoff=1.0, max_delay=5.0, sleep=fake_clock.sleep, clock=fake_clock)
        w.start()
        for _ in range(3):
            await w.wait()
        assert fake_clock.sleeps == [0.5, 0.5, 0.5]

    @pytest.mark.unit
    def test_from_settings(self, test_settings):
        w = Waiter.from_settings(test_settings)
        assert w.throttle == 0.01
        assert w.timeout == 1.0
        assert w.max_delay == 0.05

    @pytest.mark.unit
    def test_from_settings_validates(self, test_settings):
        test_settings.poll_backoff_factor = 0.1
        with pytest.raises(ValueError):
            Waiter.from_settings(test_settings)


class TestWaitForFinality:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_returns_reply_once_replied(self, waiter):
        replica = FakeReplica(statuses=[
            RequestStatus(status="received"),
            RequestStatus(status="processing"),
            RequestStatus(status="replied", reply=b"DIDL-reply"),
        ])
        reply = await wait_for_finality(replica, CANISTER_ID, REQUEST_ID, waiter)
        assert reply == b"DIDL-reply"
        assert len(replica.status_polls) == 3
        assert replica.status_polls[0] == (CANISTER_ID, REQUEST_ID)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rejected_raises_replica_reject(self, waiter):
        replica = FakeReplica(statuses=[
            RequestStatus(status="rejected", reject_code=4, reject_message="trapped"),
        ])
        with pytest.raises(ReplicaRejectError) as exc_info:
            await wait_for_finality(replica, CANISTER_ID, REQUEST_ID, waiter)
        assert exc_info.value.reject_code == RejectCode.CANISTER_REJECT
        assert exc_info.value.request_id == REQUEST_ID
        assert len(replica.status_polls) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_done_without_reply_is_transport_error(self, waiter):
        replica = FakeReplica(statuses=[RequestStatus(status="done")])
        with pytest.raises(TransportError, match="no longer available"):
            await wait_for_finality(replica, CANISTER_ID, REQUEST_ID, waiter)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout_raises_finality_timeout(self, waiter, fake_clock):
        replica = ClockedReplica(fake_clock, statuses=[RequestStatus(status="processing")])

        with pytest.raises(FinalityTimeout) as exc_info:
            await wait_for_finality(replica, CANISTER_ID, REQUEST_ID, waiter)

        assert len(replica.status_polls) >= 1
        assert replica.poll_times[0] >= 0.5
        assert fake_clock.now <= 300.0
        assert exc_info.value.polls == len(replica.status_polls)
        assert REQUEST_ID.hex() in str(exc_info.value)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_polls_never_faster_than_throttle(self, waiter, fake_clock):
        replica = ClockedReplica(fake_clock, statuses=[RequestStatus(status="processing")] * 6 + [
            RequestStatus(status="replied", reply=b"ok"),
        ])
        await wait_for_finality(replica, CANISTER_ID, REQUEST_ID, waiter)
        gaps = [b - a for a, b in zip([0.0] + replica.poll_times, replica.poll_times)]
        assert all(gap >= 0.5 for gap in gaps)


class TestClassifyReject:

    @pytest.mark.unit
    def test_destination_invalid_becomes_not_a_target(self):
        err = ReplicaRejectError(3, "Canister has no query method 'supportedInterfaces'")
        result = classify_reject(err, "canister X does not appear to be a DIP-721 NFT canister")
        assert isinstance(result, NotATargetContract)
        assert "DIP-721" in str(result)

    @pytest.mark.unit
    @pytest.mark.parametrize("code", [1, 2, 4, 5])
    def test_other_codes_unchanged(self, code):
        err = ReplicaRejectError(code, "whatever")
        assert classify_reject(err, "ignored") is err

    @pytest.mark.unit
    def test_message_text_is_not_inspected(self):
        """A canister trap mentioning 'no method' is still a plain reject."""
        err = ReplicaRejectError(5, "Canister has no update method 'mint'")
        assert classify_reject(err, "ignored") is err
