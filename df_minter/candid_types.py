"""
Candid type table for the DIP-721 calls used by the minter.

The canister interface (subset):

    type InterfaceId = variant { Approval; TransactionHistory; Mint; Burn; TransferNotification };
    type MetadataVal = variant {
        TextContent : text; BlobContent : blob; NatContent : nat;
        Nat8Content : nat8; Nat16Content : nat16; Nat32Content : nat32; Nat64Content : nat64;
    };
    type MetadataPart = record {
        purpose : variant { Preview; Rendered };
        key_val_data : vec record { text; MetadataVal };
        data : blob;
    };
    type MintReceipt = record { id : nat; token_id : nat64 };
    type MintError = variant { Unauthorized };

    supportedInterfaces : () -> (vec InterfaceId) query;
    mint : (principal, vec MetadataPart, blob) -> (variant { Ok : MintReceipt; Err : MintError });

Encoding and decoding go through ic-py's candid implementation. Decoded
records and variants may be keyed by field name or by field hash depending on
whether the wire type carried names, so lookups accept both.
"""
import logging
from typing import Any, List

from ic.candid import Types, decode, encode

from df_minter.exceptions import CandidDecodeError
from df_minter.models import (
    InterfaceId,
    MetadataPart,
    MetadataVal,
    MetadataValKind,
    MintError,
    MintOutcome,
    MintReceipt,
)

logger = logging.getLogger(__name__)


# ── Type Table ──────────────────────────────────────────────────────

InterfaceIdType = Types.Variant({i.value: Types.Null for i in InterfaceId})

MetadataValType = Types.Variant({
    MetadataValKind.TEXT.value: Types.Text,
    MetadataValKind.BLOB.value: Types.Vec(Types.Nat8),
    MetadataValKind.NAT.value: Types.Nat,
    MetadataValKind.NAT8.value: Types.Nat8,
    MetadataValKind.NAT16.value: Types.Nat16,
    MetadataValKind.NAT32.value: Types.Nat32,
    MetadataValKind.NAT64.value: Types.Nat64,
})

MetadataPurposeType = Types.Variant({"Preview": Types.Null, "Rendered": Types.Null})

MetadataPartType = Types.Record({
    "purpose": MetadataPurposeType,
    "key_val_data": Types.Vec(Types.Tuple(Types.Text, MetadataValType)),
    "data": Types.Vec(Types.Nat8),
})

MintReceiptType = Types.Record({"id": Types.Nat, "token_id": Types.Nat64})

MintErrorType = Types.Variant({e.value: Types.Null for e in MintError})

MintResultType = Types.Variant({"Ok": MintReceiptType, "Err": MintErrorType})


def field_hash(name: str) -> int:
    """Candid field id: h = (h * 223 + byte) mod 2**32 over the UTF-8 name."""
    h = 0
    for byte in name.encode("utf-8"):
        h = (h * 223 + byte) % (1 << 32)
    return h


def _field(value: dict, name: str) -> Any:
    """Look up a record field or variant tag by name or by its hash."""
    h = field_hash(name)
    for key in (name, f"_{h}_", f"_{h}", str(h), h):
        if key in value:
            return value[key]
    raise KeyError(name)


def _variant_tag(value: dict, names) -> str:
    """Return which of `names` the single-entry variant dict carries."""
    for name in names:
        try:
            _field(value, name)
        except KeyError:
            continue
        return name
    raise KeyError(f"unknown variant tag {list(value)}")


def _single_value(decoded: list) -> Any:
    if not decoded:
        raise CandidDecodeError("Expected one candid value, got none")
    item = decoded[0]
    if isinstance(item, dict) and "value" in item and "type" in item:
        return item["value"]
    return item


# ── Encoding ────────────────────────────────────────────────────────

def _encode_metadata_val(val: MetadataVal) -> dict:
    if val.kind == MetadataValKind.BLOB:
        return {val.kind.value: list(val.value)}
    return {val.kind.value: val.value}


def _encode_metadata_part(part: MetadataPart) -> dict:
    return {
        "purpose": {part.purpose.value: None},
        "key_val_data": [
            (key, _encode_metadata_val(val)) for key, val in part.key_val_data.items()
        ],
        "data": list(part.data),
    }


def encode_no_args() -> bytes:
    """Candid encoding of an empty argument list."""
    return encode([])


def encode_mint_args(owner: str, parts: List[MetadataPart], data: bytes) -> bytes:
    """Encode `(owner, metadata_parts, data)` for the `mint` method."""
    return encode([
        {"type": Types.Principal, "value": owner},
        {"type": Types.Vec(MetadataPartType), "value": [_encode_metadata_part(p) for p in parts]},
        {"type": Types.Vec(Types.Nat8), "value": list(data)},
    ])


# ── Decoding ────────────────────────────────────────────────────────

def _decode(data: bytes, ret_type) -> Any:
    try:
        return _single_value(decode(data, ret_type))
    except CandidDecodeError:
        raise
    except (ValueError, TypeError, KeyError, IndexError, AttributeError) as e:
        raise CandidDecodeError(f"Could not decode candid reply: {e}") from e


def decode_interfaces(data: bytes) -> List[InterfaceId]:
    """Decode the `vec InterfaceId` reply of `supportedInterfaces`."""
    raw = _decode(data, Types.Vec(InterfaceIdType))
    names = [i.value for i in InterfaceId]
    interfaces = []
    for entry in raw:
        try:
            interfaces.append(InterfaceId(_variant_tag(entry, names)))
        except (KeyError, TypeError):
            logger.debug(f"Ignoring unrecognised interface tag: {entry}")
    return interfaces


def decode_mint_result(data: bytes) -> MintOutcome:
    """
    Decode the `variant { Ok : MintReceipt; Err : MintError }` reply of `mint`.

    Returns:
        MintReceipt on Ok, MintError on Err — an Err is a value here, not an exception.
    """
    raw = _decode(data, MintResultType)
    try:
        tag = _variant_tag(raw, ("Ok", "Err"))
        body = _field(raw, tag)
        if tag == "Ok":
            return MintReceipt(id=int(_field(body, "id")), token_id=int(_field(body, "token_id")))
        return MintError(_variant_tag(body, [e.value for e in MintError]))
    except (KeyError, TypeError, ValueError) as e:
        raise CandidDecodeError(f"Unexpected mint reply shape: {raw!r}") from e
