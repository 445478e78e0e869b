"""
Identity Service — loads the dfx signing identity.

dfx keeps its identities under the config directory:

    <dfx>/identity.json                  {"default": "<name>"}
    <dfx>/identity/<name>/identity.pem   PEM private key (Ed25519 or secp256k1)

Any failure along the way is reported as ConfigurationError so the user is
told how to fix their setup.
"""
import logging
from pathlib import Path
from typing import Optional

from ic.identity import Identity
from pydantic import BaseModel, ValidationError

from df_minter.config import Settings
from df_minter.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class DefaultIdentity(BaseModel):
    """Shape of dfx's identity.json."""
    default: str


def default_identity_name(config_dir: Path) -> str:
    """Read the name of the default identity from identity.json."""
    path = config_dir / "identity.json"
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"could not read {path} ({getattr(e, 'strerror', None) or e})") from e
    try:
        return DefaultIdentity.model_validate_json(raw).default
    except ValidationError as e:
        raise ConfigurationError(f"{path} is not a valid dfx identity config") from e


def pem_path(config_dir: Path, name: str) -> Path:
    return config_dir / "identity" / name / "identity.pem"


def load_identity(settings: Settings, identity_name: Optional[str] = None) -> Identity:
    """
    Load the signing identity.

    Args:
        settings: Resolved settings (locates the dfx config directory).
        identity_name: Explicit identity; identity.json is consulted only when omitted.

    Returns:
        ic-py Identity for signing requests.
    """
    config_dir = settings.dfx_config_path()
    name = identity_name or default_identity_name(config_dir)
    path = pem_path(config_dir, name)

    try:
        pem = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"could not read identity '{name}' at {path} ({getattr(e, 'strerror', None) or e})") from e

    try:
        identity = Identity.from_pem(pem)
    except Exception as e:
        raise ConfigurationError(f"identity '{name}' at {path} is not a valid PEM private key") from e

    logger.info(f"Loaded identity '{name}' — principal {identity.sender().to_str()}")
    return identity
