"""
Custom exception classes for minting operations.

Every error the CLI reports derives from MinterError; the message passed to
the constructor is what ends up on stderr.
"""
from typing import Optional

from df_minter.models import RejectCode


class MinterError(Exception):
    """Base class for all df-minter errors."""
    pass


class ConfigurationError(MinterError):
    """Raised when no usable signing identity can be loaded."""

    guidance = "Configure an identity in `dfx` or provide an --identity flag"

    def __init__(self, reason: str):
        super().__init__(f"{self.guidance}: {reason}")
        self.reason = reason


class AssetIOError(MinterError):
    """Raised when the asset file cannot be read."""
    pass


class TransportError(MinterError):
    """Raised for network and protocol failures talking to a replica."""
    pass


class CandidDecodeError(TransportError):
    """Raised when a reply is not valid candid for the expected type."""
    pass


class ReplicaRejectError(TransportError):
    """Raised when the replica rejects a query or update call."""

    def __init__(self, reject_code: int, reject_message: str, request_id: Optional[bytes] = None):
        try:
            self.reject_code = RejectCode(reject_code)
        except ValueError:
            self.reject_code = reject_code
        self.reject_message = reject_message
        self.request_id = request_id
        super().__init__(f"The replica returned a rejection error: reject code {reject_code}, {reject_message}")


class NotATargetContract(MinterError):
    """Raised when the canister does not expose the DIP-721 entry point we called."""
    pass


class UnsupportedOperation(MinterError):
    """Raised when the canister does not advertise the Mint interface."""
    pass


class Unauthorized(MinterError):
    """Raised when the canister answers the mint with MintError::Unauthorized."""

    def __init__(self, message: str = "You aren't authorized as a custodian of that canister."):
        super().__init__(message)


class FinalityTimeout(MinterError):
    """Raised when an update call does not reach a final status in time."""

    def __init__(self, request_id: bytes, elapsed: float, polls: int):
        self.request_id = request_id
        self.elapsed = elapsed
        self.polls = polls
        super().__init__(
            f"Timed out after {elapsed:.1f}s ({polls} status polls) waiting for request "
            f"0x{request_id.hex()} to finalize; the mint may still have been applied"
        )
