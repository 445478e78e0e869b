"""
Transaction service — finality polling and reject classification.

An update call only returns a request id; its outcome has to be read back
from the certified request status until it is final. The Waiter below paces
those reads: the first poll happens one throttle interval after submission,
the delay then grows by the backoff factor up to a cap, and the loop gives up
once less than one throttle interval of the timeout remains.

Only the status read is repeated. The submission itself is never retried,
since a second mint would create a second token.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from df_minter.config import Settings
from df_minter.exceptions import FinalityTimeout, NotATargetContract, ReplicaRejectError, TransportError
from df_minter.models import RejectCode

logger = logging.getLogger(__name__)


class Waiter:
    """Capped exponential delay with a throttle floor and an overall deadline."""

    def __init__(
        self,
        throttle: float = 0.5,
        timeout: float = 300.0,
        backoff: float = 1.5,
        max_delay: float = 5.0,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.throttle = throttle
        self.timeout = timeout
        self.backoff = backoff
        self.max_delay = max(max_delay, throttle)
        self._sleep = sleep
        self._clock = clock
        self._started: Optional[float] = None
        self._delay = throttle
        self.polls = 0

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "Waiter":
        settings.validate_polling()
        return cls(
            throttle=settings.poll_throttle_seconds,
            timeout=settings.poll_timeout_seconds,
            backoff=settings.poll_backoff_factor,
            max_delay=settings.poll_max_delay_seconds,
            **kwargs,
        )

    def start(self):
        self._started = self._clock()
        self._delay = self.throttle
        self.polls = 0

    @property
    def elapsed(self) -> float:
        if self._started is None:
            return 0.0
        return self._clock() - self._started

    async def wait(self) -> bool:
        """
        Sleep until the next poll is due.

        Returns:
            False once the deadline leaves no room for another throttled poll.
        """
        if self._started is None:
            self.start()
        remaining = self.timeout - self.elapsed
        if remaining < self.throttle:
            return False
        await self._sleep(min(self._delay, remaining))
        self.polls += 1
        self._delay = min(self._delay * self.backoff, self.max_delay)
        return True


async def wait_for_finality(transport, canister_id: str, request_id: bytes, waiter: Waiter) -> bytes:
    """
    Poll the status of a submitted update call until it is final.

    Args:
        transport: Object with `request_status(canister_id, request_id)`.
        canister_id: Canister the call was sent to.
        request_id: Id returned by the submission.
        waiter: Pacing policy; started here.

    Returns:
        Raw candid reply bytes.

    Raises:
        ReplicaRejectError if the call was rejected.
        FinalityTimeout if no final status arrived in time.
    """
    waiter.start()
    while await waiter.wait():
        status = await transport.request_status(canister_id, request_id)
        logger.debug(f"Request 0x{request_id.hex()} status after poll {waiter.polls}: {status.status}")

        if status.status == "replied":
            logger.info(f"Request 0x{request_id.hex()} replied after {waiter.elapsed:.1f}s")
            return status.reply
        if status.status == "rejected":
            raise ReplicaRejectError(status.reject_code, status.reject_message, request_id)
        if status.status == "done":
            raise TransportError(
                f"Request 0x{request_id.hex()} finished but its reply is no longer available"
            )

    logger.warning(f"Gave up waiting for request 0x{request_id.hex()} after {waiter.polls} polls")
    raise FinalityTimeout(request_id, waiter.elapsed, waiter.polls)


def classify_reject(error: ReplicaRejectError, message: str) -> Exception:
    """
    Map a replica rejection to the error the user should see.

    A DESTINATION_INVALID reject means the canister has no such method, i.e.
    it is not a DIP-721 canister; everything else is returned unchanged.
    """
    if error.reject_code == RejectCode.DESTINATION_INVALID:
        return NotATargetContract(message)
    return error
