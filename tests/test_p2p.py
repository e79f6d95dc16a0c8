import asyncio

import pytest

from tokenchain.blockchain import Chain, Transaction
from tokenchain.p2p import Message, MessageKind, P2p, P2pMessage, Peer


def sample_chain():
    chain = Chain("miner", 1, "Coin", "CN")
    chain.generate_new_block()
    return chain


def test_get_blocks_wire_format():
    msg = P2pMessage("0.0.0.0:0", Message(MessageKind.GET_BLOCKS, "127.0.0.1:8000"))
    assert msg.encode() == b'{"sender":"0.0.0.0:0","message":{"GetBlocks":"127.0.0.1:8000"}}'


def test_transaction_message_tag():
    msg = Message(MessageKind.NEW_TRANSACTION, Transaction("a", "b", 3))
    assert msg.to_dict() == {"NewTransaction": {"sender": "a", "receiver": "b", "amount": 3}}


@pytest.mark.parametrize("kind", list(MessageKind))
def test_round_trip_every_kind(kind):
    chain = sample_chain()
    payloads = {
        MessageKind.NEW_BLOCK: chain.blocks[-1],
        MessageKind.NEW_TRANSACTION: Transaction("a", "b", 9),
        MessageKind.GET_BLOCKS: "[::1]:9000",
        MessageKind.BLOCKS: chain.blocks,
    }
    msg = P2pMessage("127.0.0.1:4000", Message(kind, payloads[kind]))
    assert P2pMessage.decode(msg.encode()) == msg


@pytest.mark.parametrize(
    "data",
    [
        b"not json",
        b"{}",
        b'{"sender":"0.0.0.0:0","message":{"Unknown":1}}',
        b'{"sender":"nowhere","message":{"GetBlocks":"127.0.0.1:1"}}',
        b'{"sender":"0.0.0.0:0","message":{"GetBlocks":"127.0.0.1:99999"}}',
        b'{"sender":"0.0.0.0:0","message":{"NewTransaction":{"sender":"a"}}}',
        b'{"sender":"0.0.0.0:0","message":{"Blocks":{}}}',
    ],
)
def test_decode_rejects_malformed(data):
    with pytest.raises(ValueError):
        P2pMessage.decode(data)


@pytest.mark.asyncio
async def test_broadcast_reaches_peers():
    received = asyncio.Queue()

    async def handler(reader, writer):
        await received.put(await reader.read(65536))
        writer.close()

    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    node = await P2p.create(0, [])
    addr = f"127.0.0.1:{port}"
    node.peers[addr] = await Peer.connect(addr)
    msg = P2pMessage("0.0.0.0:0", Message(MessageKind.GET_BLOCKS, addr))
    try:
        await node.broadcast_message(msg)
        data = await asyncio.wait_for(received.get(), 5)
        assert P2pMessage.decode(data) == msg
    finally:
        await node.close()
        server.close()
        await server.wait_closed()
    assert node.peers == {}


@pytest.mark.asyncio
async def test_peer_connect_rejects_bad_address():
    with pytest.raises(ValueError):
        await Peer.connect("localhost")