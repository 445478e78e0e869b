"""
Pydantic models and enums shared by the minting pipeline.
"""
from enum import Enum, IntEnum
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator


class MinterBase(BaseModel):
    """Shared base — every value in a mint run is built once and never mutated."""
    model_config = ConfigDict(frozen=True)


# ── Network ─────────────────────────────────────────────────────────

class Network(str, Enum):
    """The network the canister is running on."""
    IC = "ic"        # mainnet at https://ic0.app
    LOCAL = "local"  # local replica started by `dfx start`


class RejectCode(IntEnum):
    """Reject codes reported by a replica for queries and update calls."""
    SYS_FATAL = 1
    SYS_TRANSIENT = 2
    DESTINATION_INVALID = 3
    CANISTER_REJECT = 4
    CANISTER_ERROR = 5


class RequestStatus(MinterBase):
    """One snapshot of `request_status/<id>` read from a certificate."""
    status: str
    reply: Optional[bytes] = None
    reject_code: Optional[int] = None
    reject_message: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.status in ("replied", "rejected", "done")


# ── DIP-721 Types ───────────────────────────────────────────────────

class InterfaceId(str, Enum):
    APPROVAL = "Approval"
    TRANSACTION_HISTORY = "TransactionHistory"
    MINT = "Mint"
    BURN = "Burn"
    TRANSFER_NOTIFICATION = "TransferNotification"


class MetadataPurpose(str, Enum):
    PREVIEW = "Preview"
    RENDERED = "Rendered"


class MetadataValKind(str, Enum):
    TEXT = "TextContent"
    BLOB = "BlobContent"
    NAT = "NatContent"
    NAT8 = "Nat8Content"
    NAT16 = "Nat16Content"
    NAT32 = "Nat32Content"
    NAT64 = "Nat64Content"


_NAT_BITS = {
    MetadataValKind.NAT8: 8,
    MetadataValKind.NAT16: 16,
    MetadataValKind.NAT32: 32,
    MetadataValKind.NAT64: 64,
}


class MetadataVal(MinterBase):
    """A single tagged metadata value (candid `MetadataVal` variant)."""
    kind: MetadataValKind
    value: Union[int, str, bytes]

    @model_validator(mode="after")
    def check_value_matches_kind(self):
        if self.kind == MetadataValKind.TEXT:
            if not isinstance(self.value, str):
                raise ValueError("TextContent requires a str value")
        elif self.kind == MetadataValKind.BLOB:
            if not isinstance(self.value, bytes):
                raise ValueError("BlobContent requires a bytes value")
        else:
            if not isinstance(self.value, int) or self.value < 0:
                raise ValueError(f"{self.kind.value} requires a non-negative int")
            bits = _NAT_BITS.get(self.kind)
            if bits is not None and self.value >= 1 << bits:
                raise ValueError(f"{self.value} does not fit in {self.kind.value}")
        return self

    @classmethod
    def text(cls, value: str) -> "MetadataVal":
        return cls(kind=MetadataValKind.TEXT, value=value)

    @classmethod
    def blob(cls, value: bytes) -> "MetadataVal":
        return cls(kind=MetadataValKind.BLOB, value=value)

    @classmethod
    def nat8(cls, value: int) -> "MetadataVal":
        return cls(kind=MetadataValKind.NAT8, value=value)


class MetadataPart(MinterBase):
    """One metadata part sent alongside the token data."""
    purpose: MetadataPurpose
    key_val_data: Dict[str, MetadataVal]
    data: bytes


class FileAsset(MinterBase):
    """The file being minted, read into memory with its digest and MIME type."""
    path: Path
    data: bytes
    digest: bytes
    content_type: str


class MintReceipt(MinterBase):
    """Successful mint result."""
    id: int        # transaction id (candid nat)
    token_id: int  # candid nat64


class MintError(str, Enum):
    """Typed failure returned by the canister's mint method."""
    UNAUTHORIZED = "Unauthorized"


MintOutcome = Union[MintReceipt, MintError]
