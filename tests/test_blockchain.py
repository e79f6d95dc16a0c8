import hashlib

import pytest

from tokenchain.blockchain import (
    GENESIS_HASH,
    INITIAL_SUPPLY,
    REWARD,
    ROOT_ACCOUNT,
    Block,
    BlockHeader,
    Chain,
    Transaction,
    hash_item,
    merkle_root,
    proof_of_work,
)


def make_chain(published=None, difficulty=1):
    callback = published.append if published is not None else None
    return Chain("miner", difficulty, "Coin", "CN", callback)


def test_hash_of_transaction_uses_compact_json_in_field_order():
    tx = Transaction("a", "b", 5)
    expected = hashlib.sha256(b'{"sender":"a","receiver":"b","amount":5}').hexdigest()
    assert hash_item(tx) == expected


def test_hash_is_hex_sha256():
    digest = hash_item(BlockHeader(1, 2, "p", "m", 3))
    assert len(digest) == 64
    assert set(digest) <= set("0123456789abcdef")


def test_merkle_root_empty():
    assert merkle_root([]) == ""


def test_merkle_root_odd_count_duplicates_last():
    a, b, c = Transaction("a", "b", 1), Transaction("b", "c", 2), Transaction("c", "a", 3)
    assert merkle_root([a]) == merkle_root([a, a])
    assert merkle_root([a, b, c]) == merkle_root([a, b, c, c])


def test_merkle_root_depends_on_order():
    a, b = Transaction("a", "b", 1), Transaction("b", "c", 2)
    assert merkle_root([a, b]) == merkle_root([a, b])
    assert merkle_root([a, b]) != merkle_root([b, a])
    assert len(merkle_root([a, b])) == 64


def test_proof_of_work_finds_prefix():
    header = BlockHeader(0, 0, GENESIS_HASH, "", 2)
    digest = proof_of_work(header)
    assert digest.startswith("00")
    assert hash_item(header) == digest


def test_new_chain_has_genesis_block_and_reward():
    chain = make_chain()
    assert len(chain.blocks) == 1
    genesis = chain.blocks[0]
    assert genesis.header.previous_hash == GENESIS_HASH
    assert genesis.count == 1
    assert genesis.transactions == [Transaction(ROOT_ACCOUNT, "miner", REWARD)]
    assert chain.get_balance("miner") == REWARD
    assert chain.get_balance(ROOT_ACCOUNT) == INITIAL_SUPPLY - REWARD


def test_create_account():
    chain = make_chain()
    assert chain.create_account("alice") is True
    assert chain.get_balance("alice") == 0
    assert chain.create_account("alice") is False
    assert chain.get_balance("nobody") is None


def test_new_transaction_rejects_unknown_sender_and_overdraft():
    chain = make_chain()
    chain.create_account("alice")
    assert chain.new_transaction("ghost", "alice", 1) is False
    assert chain.new_transaction("alice", "miner", 1) is False
    assert chain.pending == []


def test_transaction_applied_when_block_mined():
    published = []
    chain = make_chain(published)
    chain.create_account("alice")
    assert chain.new_transaction("miner", "alice", 100) is True
    assert chain.get_balance("alice") == 0
    assert published[-1] == Transaction("miner", "alice", 100)
    chain.generate_new_block()
    assert chain.get_balance("alice") == 100
    assert chain.get_balance("miner") == 2 * REWARD - 100
    block = chain.blocks[-1]
    assert block.count == len(block.transactions) == 2
    assert chain.pending == []
    assert published[-1] == block


def test_blocks_link_and_satisfy_difficulty():
    chain = make_chain(difficulty=2)
    chain.generate_new_block()
    first, second = chain.blocks
    assert second.header.previous_hash == hash_item(first.header)
    assert hash_item(second.header).startswith("00")
    assert chain.last_hash() == hash_item(second.header)
    assert second.header.merkle == merkle_root(second.transactions)


def test_update_difficulty_and_reward():
    chain = make_chain()
    assert chain.update_difficulty(2) is True
    assert chain.update_reward(7) is True
    chain.generate_new_block()
    block = chain.blocks[-1]
    assert block.header.difficulty == 2
    assert block.transactions[0] == Transaction(ROOT_ACCOUNT, "miner", 7)
    assert chain.get_balance("miner") == REWARD + 7


def test_resolve_conflict_accepts_longer_valid_chain():
    ours = make_chain()
    theirs = make_chain()
    theirs.generate_new_block()
    assert ours.resolve_conflict(theirs.blocks) is True
    assert ours.blocks == theirs.blocks
    assert ours.blocks is not theirs.blocks


def test_resolve_conflict_rejects_shorter_or_equal():
    ours = make_chain()
    ours.generate_new_block()
    theirs = make_chain()
    assert ours.resolve_conflict(theirs.blocks) is False
    theirs.generate_new_block()
    assert ours.resolve_conflict(theirs.blocks) is False
    assert len(ours.blocks) == 2


def test_resolve_conflict_rejects_broken_link():
    ours = make_chain()
    theirs = make_chain()
    theirs.generate_new_block()
    theirs.blocks[1].header.previous_hash = GENESIS_HASH
    before = list(ours.blocks)
    assert ours.resolve_conflict(theirs.blocks) is False
    assert ours.blocks == before


def test_block_dict_round_trip():
    chain = make_chain()
    block = chain.blocks[0]
    data = block.to_dict()
    assert list(data) == ["header", "count", "transactions"]
    assert list(data["header"]) == ["timestamp", "nonce", "previous_hash", "merkle", "difficulty"]
    assert Block.from_dict(data) == block


@pytest.mark.parametrize(
    "data",
    [
        {"sender": "a", "receiver": "b"},
        {"sender": "a", "receiver": "b", "amount": "5"},
        {"sender": 1, "receiver": "b", "amount": 5},
        ["a", "b", 5],
    ],
)
def test_transaction_from_dict_rejects_bad_data(data):
    with pytest.raises(ValueError):
        Transaction.from_dict(data)