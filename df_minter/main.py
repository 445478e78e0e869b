"""
df-minter — mint a DIP-721 NFT from a local file.

Usage:
  df-minter {ic,local} <canister> --owner <principal> --file <path>
      [--identity <name>] [-v]
  stdout: confirmation line on success
  exit 0 on success, 1 on failure (message on stderr).
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from ic.principal import Principal

from df_minter.config import Settings, settings as default_settings
from df_minter.exceptions import MinterError
from df_minter.models import Network
from df_minter.services import nft_service

logger = logging.getLogger(__name__)


def principal(value: str) -> str:
    """argparse type: a principal in textual form."""
    try:
        Principal.from_str(value)
    except Exception as e:
        raise argparse.ArgumentTypeError(f"invalid principal: {value}") from e
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="df-minter", description="Mint a DIP-721 NFT from a local file")
    parser.add_argument(
        "network",
        type=Network,
        choices=list(Network),
        metavar="{" + ",".join(n.value for n in Network) + "}",
        help="The network the canister is running on (ic = mainnet, local = local replica)",
    )
    parser.add_argument("canister", type=principal, help="The DIP-721 compliant NFT canister")
    parser.add_argument("--owner", required=True, type=principal, help="The owner of the new NFT")
    parser.add_argument("--file", required=True, type=Path, help="The file whose contents are sent to the canister")
    parser.add_argument("--identity", help="dfx identity to sign with (default: dfx's default identity)")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log progress to stderr (-vv for debug)")
    return parser


def configure_logging(verbosity: int, settings: Settings):
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> int:
    settings = settings or default_settings
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose, settings)

    try:
        settings.validate_polling()
    except ValueError as e:
        print(f"Invalid configuration: DF_MINTER_{e}", file=sys.stderr)
        return 1

    try:
        receipt = asyncio.run(nft_service.mint_nft(
            settings,
            args.network,
            args.canister,
            args.owner,
            args.file,
            identity_name=args.identity,
        ))
    except MinterError as e:
        logger.debug("Mint failed", exc_info=True)
        print(e, file=sys.stderr)
        return 1

    print(nft_service.format_confirmation(receipt, args.owner))
    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
