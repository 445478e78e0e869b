"""
Certificate verification for read_state responses.

A certificate is a hash tree plus a BLS signature over its root hash. The
signing key is either the network root key, or a subnet key that the root
key vouches for through a delegation certificate.
"""
import hashlib
import logging
from typing import Optional

import cbor2
from ic.certificate import lookup

from df_minter.exceptions import TransportError

logger = logging.getLogger(__name__)

# DER header of an IC BLS12-381 public key; the raw G2 point follows
DER_PREFIX = bytes.fromhex(
    "308182301d060d2b0601040182dc7c0503010201060c2b0601040182dc7c05030201036100"
)
KEY_LENGTH = 96
SIGNATURE_LENGTH = 48

STATE_ROOT_DOMAIN = b"\x0dic-state-root"
BLS_DST = b"BLS_SIG_BLS12381G1_XMD:SHA-256_SSWU_RO_NUL_"

EMPTY, FORK, LABELED, LEAF, PRUNED = range(5)


def _domain(name: str) -> bytes:
    raw = name.encode()
    return bytes([len(raw)]) + raw


def reconstruct(tree) -> bytes:
    """Root hash of a hash tree."""
    try:
        kind = tree[0]
        if kind == EMPTY:
            return hashlib.sha256(_domain("ic-hashtree-empty")).digest()
        if kind == FORK:
            return hashlib.sha256(
                _domain("ic-hashtree-fork") + reconstruct(tree[1]) + reconstruct(tree[2])
            ).digest()
        if kind == LABELED:
            return hashlib.sha256(_domain("ic-hashtree-labeled") + tree[1] + reconstruct(tree[2])).digest()
        if kind == LEAF:
            return hashlib.sha256(_domain("ic-hashtree-leaf") + tree[1]).digest()
        if kind == PRUNED:
            return bytes(tree[1])
    except (IndexError, TypeError) as e:
        raise TransportError(f"Malformed certificate tree: {e}") from e
    raise TransportError(f"Unknown hash tree node type: {kind!r}")


def extract_der(key: bytes) -> bytes:
    """Raw 96-byte BLS public key from its DER encoding."""
    if len(key) != len(DER_PREFIX) + KEY_LENGTH or not key.startswith(DER_PREFIX):
        raise TransportError(f"Not a DER-encoded BLS public key ({len(key)} bytes)")
    return key[len(DER_PREFIX):]


def verify_bls(message: bytes, signature: bytes, public_key: bytes) -> bool:
    """
    Check a BLS12-381 signature in the minimal-signature scheme: signatures
    on G1, public keys on G2.

    Raises:
        ValueError: When the signature or key is not a valid point encoding.
    """
    from py_ecc.bls.hash_to_curve import hash_to_G1
    from py_ecc.bls.point_compression import decompress_G1, decompress_G2
    from py_ecc.optimized_bls12_381 import G2, is_inf, pairing

    if len(signature) != SIGNATURE_LENGTH or len(public_key) != KEY_LENGTH:
        raise ValueError("BLS signature or key has the wrong length")

    sig_point = decompress_G1(int.from_bytes(signature, "big"))
    key_point = decompress_G2((
        int.from_bytes(public_key[:48], "big"),
        int.from_bytes(public_key[48:], "big"),
    ))
    if is_inf(sig_point) or is_inf(key_point):
        return False

    msg_point = hash_to_G1(message, BLS_DST, hashlib.sha256)
    return pairing(G2, sig_point) == pairing(key_point, msg_point)


def _signing_key(cert: dict, root_key: bytes) -> bytes:
    delegation = cert.get("delegation")
    if delegation is None:
        return extract_der(root_key)

    try:
        subnet_id = delegation["subnet_id"]
        delegated = cbor2.loads(delegation["certificate"])
    except (KeyError, TypeError, cbor2.CBORDecodeError, ValueError) as e:
        raise TransportError(f"Malformed certificate delegation: {e}") from e
    if isinstance(delegated, dict) and "delegation" in delegated:
        raise TransportError("Certificate delegations may not be nested")

    verify_certificate(delegated, root_key)
    subnet_key = lookup([b"subnet", subnet_id, b"public_key"], delegated)
    if subnet_key is None:
        raise TransportError("Certificate delegation does not carry the subnet public key")
    logger.debug(f"Certificate delegated to subnet 0x{bytes(subnet_id).hex()}")
    return extract_der(subnet_key)


def verify_certificate(cert: dict, root_key: Optional[bytes]):
    """
    Verify a decoded certificate against the trusted root key.

    Raises:
        TransportError: When the certificate is malformed or its signature
            does not check out.
    """
    if root_key is None:
        raise TransportError("No trusted root key to verify the certificate against")
    if not isinstance(cert, dict) or "tree" not in cert or "signature" not in cert:
        raise TransportError("Malformed certificate: missing tree or signature")

    public_key = _signing_key(cert, root_key)
    message = STATE_ROOT_DOMAIN + reconstruct(cert["tree"])
    try:
        valid = verify_bls(message, bytes(cert["signature"]), public_key)
    except (ValueError, TypeError) as e:
        raise TransportError(f"Certificate signature is not a valid BLS signature: {e}") from e
    if not valid:
        raise TransportError("Certificate signature verification failed")
