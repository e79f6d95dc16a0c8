"""Proof-of-work token ledger with Merkle roots, balances, a TCP message layer and a terminal interface."""

__version__ = "0.1.0"
__all__ = ["app", "blockchain", "p2p"]