# tokenchain

A small proof-of-work token ledger. It keeps account balances and mines
blocks that carry a miner reward and the pending transactions. For each block
it computes a Merkle root over the block's transactions. It also defines a
JSON wire format and an asyncio TCP layer for passing blocks and transactions
between nodes.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

The terminal interface uses the standard `curses` module, so it needs a
platform where `curses` is available.

## The terminal interface

```
tokenchain <port>
```

If the port argument is missing, or there is more than one argument, the
command prints a usage line and exits. A port that is not a number from 0 to
65535 raises `ValueError`.

The command binds a listener on `127.0.0.1:<port>`. It then asks for four
setup values: miner address, difficulty, token name and token symbol. The
difficulty is the number of leading zero hex digits a block hash must have,
and it must be an unsigned 32-bit integer. Once the values are in, it creates
a chain, which mines the genesis block, and shows three panes: a menu, an
input line and a message list.

- Up and Down move through the menu and wrap around at either end. At the
  start nothing is selected.
- Enter switches to editing mode. In editing mode, typed characters go into
  the input line and Backspace removes the last one.
- A second Enter runs the selected menu entry, or the first entry if none is
  selected. It then clears the input and goes back to the menu.
- Esc leaves editing mode and keeps the input.
- `q` quits from the menu.

**Mine Block** mines a new block and logs "New block mined". **New
Transaction**, **Create Account** and **Check Balance** only log that they
were selected. The text typed into the input line is not used.

Each new block and each transaction that the chain announces is shown in the
message list.

## Using the ledger from Python

```python
from tokenchain.blockchain import Chain, hash_item, merkle_root

chain = Chain("miner", 2, "Example Token", "EXT")
chain.create_account("alice")
chain.new_transaction("Root", "alice", 100)
chain.generate_new_block()

print(chain.get_balance("alice"))   # 100
print(chain.last_hash())            # hash of the newest block header
```

A new `Chain` starts with a `Root` account that holds 1,000,000,000 units,
and it mines a genesis block straight away. Every mined block pays the miner
a reward of 420 units from `Root`. You can change the reward with
`update_reward` and the difficulty with `update_difficulty`.

- `create_account` opens an account with a zero balance. It returns `False`
  if the account already exists.
- `get_balance` returns `None` for an unknown account.
- `new_transaction` returns `False` if the sender is unknown or does not have
  enough funds. Otherwise the transaction waits in `chain.pending` until the
  next `generate_new_block`.
- `resolve_conflict` replaces `chain.blocks` with a longer chain when every
  block in it links to the hash of the block before it.

Pass `publish=` to `Chain` to receive a copy of every new transaction and
every mined block.

Module-level helpers:

- `hash_item` returns the hex SHA-256 of an item's compact JSON form.
- `merkle_root` returns the Merkle root of a list of transactions.
- `proof_of_work` advances a header's nonce until its hash meets the header's
  difficulty.

`Transaction`, `BlockHeader` and `Block` convert to and from plain
dictionaries with `to_dict` and `from_dict`.

## Peer messages

`tokenchain.p2p` holds the wire format and the network layer.

- `Message` is a tagged value whose `MessageKind` is `NEW_BLOCK`,
  `NEW_TRANSACTION`, `GET_BLOCKS` (with an `ip:port` address) or `BLOCKS`
  (a list of blocks).
- `P2pMessage` pairs a message with the sender's `ip:port` address. It
  converts to and from JSON bytes with `encode` and `decode`, and `decode`
  raises `ValueError` on malformed input.
- `P2p.create` binds a listener on `127.0.0.1`.
- `await node.run(queue)` accepts connections and puts every message it
  decodes onto an asyncio queue.
- `P2p.broadcast_message` sends a message to every peer in `node.peers`.
- `Peer.connect` opens an outgoing connection to an address.

## What it does not do

The terminal interface does not start `P2p.run`, so the node binds its port
but never accepts connections, and no messages arrive from other nodes.
Nothing adds connected peers to `P2p.peers`, so nothing is broadcast. The
menu cannot create transactions or accounts or show balances. Chains are kept
in memory only and are not saved.