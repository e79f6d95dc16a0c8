"""Ledger of blocks, proof-of-work mining and account balances."""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

logger = logging.getLogger(__name__)

REWARD = 420
GENESIS_HASH = "0" * 64
ROOT_ACCOUNT = "Root"
INITIAL_SUPPLY = 1_000_000_000


def _field(data: Any, key: str, kind: type) -> Any:
    """Fetch a typed field from a decoded mapping, raising ValueError on mismatch."""
    if not isinstance(data, dict):
        raise ValueError(f"expected an object, got {type(data).__name__}")
    if key not in data:
        raise ValueError(f"missing field {key!r}")
    value = data[key]
    if kind is int and isinstance(value, bool):
        raise ValueError(f"field {key!r} must be an integer")
    if not isinstance(value, kind):
        raise ValueError(f"field {key!r} must be of type {kind.__name__}")
    return value


@dataclass
class Transaction:
    """A transfer of tokens from one account to another."""

    sender: str
    receiver: str
    amount: int

    def to_dict(self) -> dict[str, Any]:
        return {"sender": self.sender, "receiver": self.receiver, "amount": self.amount}

    @classmethod
    def from_dict(cls, data: Any) -> Transaction:
        return cls(
            sender=_field(data, "sender", str),
            receiver=_field(data, "receiver", str),
            amount=_field(data, "amount", int),
        )


@dataclass
class BlockHeader:
    """The hashed part of a block."""

    timestamp: int
    nonce: int
    previous_hash: str
    merkle: str
    difficulty: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "nonce": self.nonce,
            "previous_hash": self.previous_hash,
            "merkle": self.merkle,
            "difficulty": self.difficulty,
        }

    @classmethod
    def from_dict(cls, data: Any) -> BlockHeader:
        return cls(
            timestamp=_field(data, "timestamp", int),
            nonce=_field(data, "nonce", int),
            previous_hash=_field(data, "previous_hash", str),
            merkle=_field(data, "merkle", str),
            difficulty=_field(data, "difficulty", int),
        )


@dataclass
class Block:
    """A mined header together with the transactions it commits to."""

    header: BlockHeader
    count: int = 0
    transactions: list[Transaction] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "header": self.header.to_dict(),
            "count": self.count,
            "transactions": [tx.to_dict() for tx in self.transactions],
        }

    @classmethod
    def from_dict(cls, data: Any) -> Block:
        return cls(
            header=BlockHeader.from_dict(_field(data, "header", dict)),
            count=_field(data, "count", int),
            transactions=[Transaction.from_dict(tx) for tx in _field(data, "transactions", list)],
        )


def _serializable(item: Any) -> Any:
    if hasattr(item, "to_dict"):
        return item.to_dict()
    if isinstance(item, (list, tuple)):
        return [_serializable(x) for x in item]
    return item


def hash_item(item: Any) -> str:
    """Hex SHA-256 of the compact JSON form of ``item``."""
    text = json.dumps(_serializable(item), separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def merkle_root(transactions: Iterable[Transaction]) -> str:
    """Merkle root of the transaction hashes; empty string for no transactions."""
    level = [hash_item(tx) for tx in transactions]
    if not level:
        return ""
    if len(level) % 2 == 1:
        level.append(level[-1])
    while len(level) > 1:
        pairs = zip(level[0::2], level[1::2] + [None] * (len(level) % 2))
        level = [hash_item(left + (right if right is not None else left)) for left, right in pairs]
    return level[0]


def proof_of_work(header: BlockHeader) -> str:
    """Advance the header's nonce until its hash has ``difficulty`` leading zeros."""
    prefix = "0" * header.difficulty
    while True:
        digest = hash_item(header)
        if digest.startswith(prefix):
            print(f"Block hash: {digest}")
            return digest
        header.nonce += 1


Published = Union[Block, Transaction]


class Chain:
    """A single node's chain, pending transactions and balances."""

    def __init__(
        self,
        miner_address: str,
        difficulty: int,
        token_name: str,
        token_symbol: str,
        publish: Optional[Callable[[Published], None]] = None,
    ) -> None:
        self.blocks: list[Block] = []
        self.pending: list[Transaction] = []
        self.difficulty = difficulty
        self.miner_address = miner_address
        self.reward = REWARD
        self.token_name = token_name
        self.token_symbol = token_symbol
        self.balances: dict[str, int] = {ROOT_ACCOUNT: INITIAL_SUPPLY}
        self._publish = publish
        self.generate_new_block()

    def _announce(self, item: Published) -> None:
        if self._publish is not None:
            self._publish(item)

    def create_account(self, account: str) -> bool:
        """Open an account with a zero balance; False if it already exists."""
        if account in self.balances:
            return False
        self.balances[account] = 0
        return True

    def get_balance(self, account: str) -> Optional[int]:
        return self.balances.get(account)

    def new_transaction(self, sender: str, receiver: str, amount: int) -> bool:
        """Queue a transaction for the next block if the sender can cover it."""
        balance = self.balances.get(sender)
        if balance is None:
            logger.info("Transaction failed: sender not found.")
            return False
        if balance < amount:
            logger.info("Transaction failed: insufficient funds.")
            return False
        tx = Transaction(sender, receiver, amount)
        logger.info("New transaction created: %r", tx)
        self.pending.append(tx)
        self._announce(copy.deepcopy(tx))
        return True

    def last_hash(self) -> str:
        if not self.blocks:
            return GENESIS_HASH
        return hash_item(self.blocks[-1].header)

    def update_difficulty(self, difficulty: int) -> bool:
        self.difficulty = difficulty
        return True

    def update_reward(self, reward: int) -> bool:
        self.reward = reward
        return True

    def generate_new_block(self) -> bool:
        """Mine the pending transactions plus the miner's reward into a new block."""
        header = BlockHeader(
            timestamp=int(time.time() * 1000),
            nonce=0,
            previous_hash=self.last_hash(),
            merkle="",
            difficulty=self.difficulty,
        )
        transactions = [Transaction(ROOT_ACCOUNT, self.miner_address, self.reward), *self.pending]
        self.pending = []
        block = Block(header=header, count=len(transactions), transactions=transactions)
        block.header.merkle = merkle_root(block.transactions)
        proof_of_work(block.header)
        logger.info("New block mined: %r", block)
        if not self.blocks:
            logger.info("Token Name: %s", self.token_name)
            logger.info("Token Symbol: %s", self.token_symbol)
        self._apply(block)
        self._announce(copy.deepcopy(block))
        self.blocks.append(block)
        return True

    def _apply(self, block: Block) -> None:
        for tx in block.transactions:
            if tx.sender in self.balances:
                self.balances[tx.sender] -= tx.amount
            self.balances[tx.receiver] = self.balances.get(tx.receiver, 0) + tx.amount

    def resolve_conflict(self, new_chain: list[Block]) -> bool:
        """Adopt ``new_chain`` if it is longer and every block links to its predecessor."""
        if len(new_chain) <= len(self.blocks):
            return False
        for previous, block in zip(new_chain, new_chain[1:]):
            if block.header.previous_hash != hash_item(previous.header):
                return False
        self.blocks = copy.deepcopy(list(new_chain))
        return True