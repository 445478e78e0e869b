"""
df-minter — mint a DIP-721 NFT on an Internet Computer canister from the command line.
"""

__version__ = "0.1.0"
