"""
Pytest configuration and shared fixtures for df-minter tests.

Provides test settings pointing at a temporary dfx directory, a fake clock
for the finality waiter, and an in-memory replica that answers the DIP-721
calls with real candid.
"""
from typing import Iterable, List, Optional

import pytest
from ic.candid import Types, encode

from df_minter.candid_types import InterfaceIdType, MintResultType
from df_minter.config import Settings
from df_minter.models import RequestStatus
from df_minter.services.transaction_service import Waiter

# ── Principals ───────────────────────────────────────────────────────

CANISTER_ID = "rrkah-fqaaa-aaaaa-aaaaq-cai"
OWNER_PRINCIPAL = "ryjl3-tyaaa-aaaaa-aaaba-cai"
REQUEST_ID = bytes(range(32))


# ── Candid Replies ───────────────────────────────────────────────────

def encode_interfaces(names: Iterable[str]) -> bytes:
    return encode([{"type": Types.Vec(InterfaceIdType), "value": [{n: None} for n in names]}])


def encode_mint_ok(tx_id: int, token_id: int) -> bytes:
    return encode([{"type": MintResultType, "value": {"Ok": {"id": tx_id, "token_id": token_id}}}])


def encode_mint_unauthorized() -> bytes:
    return encode([{"type": MintResultType, "value": {"Err": {"Unauthorized": None}}}])


# ── Fakes ────────────────────────────────────────────────────────────

class FakeClock:
    """Monotonic clock that only moves when the waiter sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeReplica:
    """In-memory stand-in for ReplicaClient."""

    def __init__(
        self,
        interfaces: Iterable[str] = ("Mint",),
        statuses: Optional[List[RequestStatus]] = None,
        query_error: Optional[Exception] = None,
        submit_error: Optional[Exception] = None,
    ):
        self.interfaces = list(interfaces)
        self.statuses = list(statuses) if statuses is not None else [
            RequestStatus(status="processing"),
            RequestStatus(status="replied", reply=encode_mint_ok(7, 42)),
        ]
        self.query_error = query_error
        self.submit_error = submit_error
        self.queries = []
        self.submitted = []
        self.status_polls = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    async def query(self, canister_id: str, method_name: str, arg: bytes) -> bytes:
        self.queries.append((canister_id, method_name, arg))
        if self.query_error:
            raise self.query_error
        return encode_interfaces(self.interfaces)

    async def submit(self, canister_id: str, method_name: str, arg: bytes) -> bytes:
        self.submitted.append((canister_id, method_name, arg))
        if self.submit_error:
            raise self.submit_error
        return REQUEST_ID

    async def request_status(self, canister_id: str, request_id: bytes) -> RequestStatus:
        self.status_polls.append((canister_id, request_id))
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def dfx_dir(tmp_path):
    path = tmp_path / "dfx"
    path.mkdir()
    return path


@pytest.fixture
def test_settings(dfx_dir) -> Settings:
    """Settings isolated from the environment and the real home directory."""
    return Settings(
        dfx_config_dir=dfx_dir,
        poll_throttle_seconds=0.01,
        poll_timeout_seconds=1.0,
        poll_max_delay_seconds=0.05,
        _env_file=None,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def waiter(fake_clock) -> Waiter:
    """Production pacing (0.5s throttle, 300s timeout) on the fake clock."""
    return Waiter(throttle=0.5, timeout=300.0, backoff=1.5, max_delay=5.0, sleep=fake_clock.sleep, clock=fake_clock)


@pytest.fixture
def fake_replica() -> FakeReplica:
    return FakeReplica(interfaces=("Mint", "Burn"))


@pytest.fixture
def asset_file(tmp_path):
    """A 10-byte file with no recognised extension."""
    path = tmp_path / "token"
    path.write_bytes(b"0123456789")
    return path
