"""
Replica client for Internet Computer canister calls.

Speaks the replica's HTTP interface (v2) directly over httpx:

    POST /api/v2/canister/<id>/query       — signed read-only call
    POST /api/v2/canister/<id>/call        — signed update call (202 Accepted)
    POST /api/v2/canister/<id>/read_state  — certified request status
    GET  /api/v2/status                    — replica status incl. root key

Request envelopes are CBOR, signed with ic-py's identity and `sign_request`.
Rejections surface as ReplicaRejectError carrying the numeric reject code so
callers can branch on the kind of failure rather than on message text.
"""
import logging
import time
from typing import Optional

import cbor2
import httpx
import leb128
from ic.agent import sign_request
from ic.certificate import lookup
from ic.constants import IC_ROOT_KEY
from ic.identity import Identity
from ic.principal import Principal

from df_minter.certificate import verify_certificate
from df_minter.config import Settings
from df_minter.exceptions import ReplicaRejectError, TransportError
from df_minter.models import Network, RequestStatus

logger = logging.getLogger(__name__)

# Replicas reject ingress expiries more than five minutes out
INGRESS_EXPIRY_SECONDS = 4 * 60

CBOR_HEADERS = {"Content-Type": "application/cbor"}


class ReplicaClient:
    """Signed access to one replica for one identity."""

    def __init__(
        self,
        url: str,
        identity: Identity,
        *,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
        root_key: bytes = IC_ROOT_KEY,
    ):
        self.url = url.rstrip("/")
        self.identity = identity
        # DER-encoded; read_state certificates are verified against it
        self.root_key = root_key
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "ReplicaClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self._http.aclose()

    # ── HTTP ────────────────────────────────────────────────────────

    async def _post_cbor(self, canister_id: str, endpoint: str, data: bytes) -> httpx.Response:
        url = f"{self.url}/api/v2/canister/{canister_id}/{endpoint}"
        try:
            response = await self._http.post(url, content=data, headers=CBOR_HEADERS)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Replica returned HTTP {e.response.status_code} for {endpoint}: {e.response.text.strip()}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to reach replica at {self.url}: {e}") from e
        return response

    @staticmethod
    def _loads(content: bytes, what: str):
        try:
            return cbor2.loads(content)
        except (cbor2.CBORDecodeError, ValueError) as e:
            raise TransportError(f"Malformed {what} response from replica: {e}") from e

    def _request(self, request_type: str, canister_id: Optional[str], **fields) -> dict:
        return {
            "request_type": request_type,
            "sender": self.identity.sender().bytes,
            "ingress_expiry": int(time.time() + INGRESS_EXPIRY_SECONDS) * 10**9,
            **({"canister_id": Principal.from_str(canister_id).bytes} if canister_id else {}),
            **fields,
        }

    # ── Root Key ────────────────────────────────────────────────────

    async def fetch_root_key(self) -> bytes:
        """
        Fetch and trust the replica's root key, replacing the mainnet key.

        Local replicas generate a fresh root key per instance; never call
        this against mainnet, whose key is already known.
        """
        try:
            response = await self._http.get(f"{self.url}/api/v2/status")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to fetch root key from {self.url}: {e}") from e

        status = self._loads(response.content, "status")
        root_key = status.get("root_key") if isinstance(status, dict) else None
        if not isinstance(root_key, bytes):
            raise TransportError("Replica status did not include a root key")
        self.root_key = root_key
        logger.info(f"Fetched root key from {self.url} ({len(root_key)} bytes)")
        return root_key

    # ── Calls ───────────────────────────────────────────────────────

    async def query(self, canister_id: str, method_name: str, arg: bytes) -> bytes:
        """Signed query call. Returns the raw candid reply."""
        req = self._request("query", canister_id, method_name=method_name, arg=arg)
        _, data = sign_request(req, self.identity)
        response = await self._post_cbor(canister_id, "query", data)
        result = self._loads(response.content, "query")
        if not isinstance(result, dict) or "status" not in result:
            raise TransportError(f"Malformed query result: {result!r}")

        if result["status"] == "replied":
            try:
                return result["reply"]["arg"]
            except (KeyError, TypeError) as e:
                raise TransportError(f"Malformed query result: missing {e}") from e
        if result["status"] == "rejected":
            raise ReplicaRejectError(result.get("reject_code", 0), result.get("reject_message", ""))
        raise TransportError(f"Unexpected query status: {result['status']}")

    async def submit(self, canister_id: str, method_name: str, arg: bytes) -> bytes:
        """
        Submit a signed update call.

        Returns:
            The request id to poll with request_status().
        """
        req = self._request("call", canister_id, method_name=method_name, arg=arg)
        req_id, data = sign_request(req, self.identity)
        response = await self._post_cbor(canister_id, "call", data)

        # v2 replicas answer 202 with an empty body; some report a sync reject
        if response.content:
            try:
                body = cbor2.loads(response.content)
            except (cbor2.CBORDecodeError, ValueError):
                body = None
            if isinstance(body, dict) and "reject_code" in body:
                raise ReplicaRejectError(body["reject_code"], body.get("reject_message", ""), req_id)

        logger.info(f"Submitted {method_name} to {canister_id}: request 0x{req_id.hex()}")
        return req_id

    async def request_status(self, canister_id: str, request_id: bytes) -> RequestStatus:
        """Read the certified status of a submitted update call."""
        req = self._request("read_state", None, paths=[[b"request_status", request_id]])
        _, data = sign_request(req, self.identity)
        response = await self._post_cbor(canister_id, "read_state", data)
        body = self._loads(response.content, "read_state")
        try:
            cert = cbor2.loads(body["certificate"])
        except (KeyError, TypeError, cbor2.CBORDecodeError, ValueError) as e:
            raise TransportError(f"Malformed read_state certificate: {e}") from e

        base = [b"request_status", request_id]
        status = lookup(base + [b"status"], cert)
        if status is None:
            return RequestStatus(status="unknown")
        status = status.decode()

        # Final statuses only; intermediate ones are never acted on
        if status in ("replied", "rejected", "done"):
            verify_certificate(cert, self.root_key)

        if status == "replied":
            return RequestStatus(status=status, reply=lookup(base + [b"reply"], cert))
        if status == "rejected":
            code = lookup(base + [b"reject_code"], cert)
            message = lookup(base + [b"reject_message"], cert)
            return RequestStatus(
                status=status,
                reject_code=leb128.u.decode(code) if code else 0,
                reject_message=message.decode() if message else "",
            )
        return RequestStatus(status=status)


async def create_client(network: Network, identity: Identity, settings: Settings) -> ReplicaClient:
    """
    Build a ReplicaClient for the network. Mainnet certificates are checked
    against the bundled IC root key; a local replica's key is fetched.

    The caller owns the returned client and must close it.
    """
    client = ReplicaClient(
        settings.network_url(network),
        identity,
        timeout=settings.request_timeout_seconds,
    )
    if network == Network.LOCAL:
        try:
            await client.fetch_root_key()
        except TransportError:
            await client.aclose()
            raise
    return client
