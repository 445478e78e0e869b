"""
NFT Service — mints one DIP-721 token on a canister.

Flow:
    1. Load the signing identity (dfx config) and open a replica client
    2. Query supportedInterfaces; the canister must advertise Mint
    3. Read the file, hash it, guess its content type
    4. Build one Rendered MetadataPart around the file
    5. Submit the signed `mint` update call
    6. Poll the request status until final (bounded by the Waiter)
    7. Decode Ok(MintReceipt) / Err(MintError)
"""
import logging
from pathlib import Path
from typing import List, Optional

from df_minter import candid_types
from df_minter.config import Settings
from df_minter.exceptions import ReplicaRejectError, Unauthorized, UnsupportedOperation
from df_minter.ic_client import create_client
from df_minter.models import (
    FileAsset,
    InterfaceId,
    MetadataPart,
    MetadataPurpose,
    MetadataVal,
    MintError,
    MintReceipt,
    Network,
)
from df_minter.services import asset_service, identity_service
from df_minter.services.transaction_service import Waiter, classify_reject, wait_for_finality

logger = logging.getLogger(__name__)

# DIP-721 location type 4: the content is stored in the canister itself
LOCATION_TYPE_IN_CANISTER = 4


def build_metadata(asset: FileAsset) -> MetadataPart:
    """Metadata describing the asset, with the asset bytes attached."""
    return MetadataPart(
        purpose=MetadataPurpose.RENDERED,
        key_val_data={
            "locationType": MetadataVal.nat8(LOCATION_TYPE_IN_CANISTER),
            "contentHash": MetadataVal.blob(asset.digest),
            "contentType": MetadataVal.text(asset.content_type),
        },
        data=asset.data,
    )


async def supported_interfaces(transport, canister: str) -> List[InterfaceId]:
    """Ask the canister which DIP-721 interfaces it implements."""
    try:
        reply = await transport.query(canister, "supportedInterfaces", candid_types.encode_no_args())
    except ReplicaRejectError as e:
        raise classify_reject(
            e, f"canister {canister} does not appear to be a DIP-721 NFT canister"
        ) from e
    interfaces = candid_types.decode_interfaces(reply)
    logger.info(f"Canister {canister} supports: {', '.join(i.value for i in interfaces) or 'nothing'}")
    return interfaces


async def submit_mint(
    transport,
    canister: str,
    owner: str,
    metadata: MetadataPart,
    data: bytes,
    waiter: Waiter,
) -> MintReceipt:
    """Submit the mint call once and wait for its final result."""
    arg = candid_types.encode_mint_args(owner, [metadata], data)
    reject_message = f"canister {canister} does not support minting"
    try:
        request_id = await transport.submit(canister, "mint", arg)
        reply = await wait_for_finality(transport, canister, request_id, waiter)
    except ReplicaRejectError as e:
        raise classify_reject(e, reject_message) from e

    outcome = candid_types.decode_mint_result(reply)
    if isinstance(outcome, MintError):
        # MintError has a single case today: Unauthorized
        raise Unauthorized()
    return outcome


async def mint_with_transport(
    transport,
    canister: str,
    owner: str,
    file_path: Path,
    waiter: Waiter,
) -> MintReceipt:
    """Capability check, asset preparation, submission and decode over an open transport."""
    interfaces = await supported_interfaces(transport, canister)
    if InterfaceId.MINT not in interfaces:
        raise UnsupportedOperation(f"canister {canister} does not support minting")

    asset = asset_service.read_asset(file_path)
    metadata = build_metadata(asset)
    receipt = await submit_mint(transport, canister, owner, metadata, asset.data, waiter)
    logger.info(f"Minted token {receipt.token_id} (transaction {receipt.id})")
    return receipt


async def mint_nft(
    settings: Settings,
    network: Network,
    canister: str,
    owner: str,
    file_path: Path,
    *,
    identity_name: Optional[str] = None,
    transport=None,
    waiter: Optional[Waiter] = None,
) -> MintReceipt:
    """
    Mint one NFT holding the contents of `file_path` to `owner`.

    Args:
        settings: Resolved settings.
        network: Network the canister runs on.
        canister: DIP-721 canister principal.
        owner: Principal receiving the token.
        file_path: File whose bytes become the token data.
        identity_name: dfx identity to sign with (default identity when None).
        transport: Pre-built replica client; when given, no identity is loaded.
        waiter: Finality polling policy; built from settings when None.

    Returns:
        MintReceipt with the transaction and token ids.
    """
    waiter = waiter or Waiter.from_settings(settings)
    if transport is not None:
        return await mint_with_transport(transport, canister, owner, file_path, waiter)

    identity = identity_service.load_identity(settings, identity_name)
    async with await create_client(network, identity, settings) as client:
        return await mint_with_transport(client, canister, owner, file_path, waiter)


def format_confirmation(receipt: MintReceipt, owner: str) -> str:
    return f"Successfully minted token {receipt.token_id} to {owner} (transaction id {receipt.id})"
