"""Peer-to-peer messaging between nodes over TCP with JSON frames."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import ipaddress
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from tokenchain.blockchain import Block, Transaction

logger = logging.getLogger(__name__)

READ_SIZE = 1024


def _split_addr(addr: str) -> tuple[str, int]:
    """Split an ``ip:port`` socket address, raising ValueError if malformed."""
    if not isinstance(addr, str):
        raise ValueError("socket address must be a string")
    host, sep, port_text = addr.rpartition(":")
    if not sep or not port_text.isdigit():
        raise ValueError(f"invalid socket address {addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
        if ipaddress.ip_address(host).version != 6:
            raise ValueError(f"invalid socket address {addr!r}")
    elif ipaddress.ip_address(host).version != 4:
        raise ValueError(f"invalid socket address {addr!r}")
    port = int(port_text)
    if port > 65535:
        raise ValueError(f"invalid port in {addr!r}")
    return host, port


class MessageKind(enum.Enum):
    NEW_BLOCK = "NewBlock"
    NEW_TRANSACTION = "NewTransaction"
    GET_BLOCKS = "GetBlocks"
    BLOCKS = "Blocks"


Payload = Union[Block, Transaction, str, list]


@dataclass
class Message:
    """A tagged network message and its payload."""

    kind: MessageKind
    payload: Payload

    def to_dict(self) -> dict[str, Any]:
        if self.kind is MessageKind.GET_BLOCKS:
            body: Any = self.payload
        elif self.kind is MessageKind.BLOCKS:
            body = [block.to_dict() for block in self.payload]
        else:
            body = self.payload.to_dict()
        return {self.kind.value: body}

    @classmethod
    def from_dict(cls, data: Any) -> Message:
        if not isinstance(data, dict) or len(data) != 1:
            raise ValueError("message must be an object with a single tag")
        (tag, body), = data.items()
        try:
            kind = MessageKind(tag)
        except ValueError:
            raise ValueError(f"unknown message kind {tag!r}") from None
        if kind is MessageKind.NEW_BLOCK:
            return cls(kind, Block.from_dict(body))
        if kind is MessageKind.NEW_TRANSACTION:
            return cls(kind, Transaction.from_dict(body))
        if kind is MessageKind.GET_BLOCKS:
            _split_addr(body)
            return cls(kind, body)
        if not isinstance(body, list):
            raise ValueError("Blocks payload must be a list")
        return cls(kind, [Block.from_dict(block) for block in body])


@dataclass
class P2pMessage:
    """A message together with the address of the node that sent it."""

    sender: str
    message: Message

    def encode(self) -> bytes:
        data = {"sender": self.sender, "message": self.message.to_dict()}
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    @classmethod
    def decode(cls, data: bytes) -> P2pMessage:
        try:
            obj = json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValueError(f"malformed message: {exc}") from exc
        if not isinstance(obj, dict) or "sender" not in obj or "message" not in obj:
            raise ValueError("message must have sender and message fields")
        _split_addr(obj["sender"])
        return cls(sender=obj["sender"], message=Message.from_dict(obj["message"]))


@dataclass
class Peer:
    """An outgoing connection to another node."""

    addr: str
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter

    @classmethod
    async def connect(cls, addr: str) -> Peer:
        host, port = _split_addr(addr)
        reader, writer = await asyncio.open_connection(host, port)
        return cls(addr, reader, writer)

    async def send(self, data: bytes) -> None:
        self.writer.write(data)
        await self.writer.drain()

    async def close(self) -> None:
        self.writer.close()
        with contextlib.suppress(OSError):
            await self.writer.wait_closed()


@dataclass
class P2p:
    """A listening node that forwards received messages and broadcasts to peers."""

    server: asyncio.AbstractServer
    peer_addrs: list[str]
    peers: dict[str, Peer] = field(default_factory=dict)
    _queue: Optional[asyncio.Queue] = None

    @classmethod
    async def create(cls, port: int, peer_addrs: list[str]) -> P2p:
        """Bind a listener on 127.0.0.1 at ``port``; it accepts once ``run`` is awaited."""
        node = cls(server=None, peer_addrs=list(peer_addrs))  # type: ignore[arg-type]
        node.server = await asyncio.start_server(
            node._handle, "127.0.0.1", port, start_serving=False
        )
        return node

    @property
    def address(self) -> tuple[str, int]:
        host, port = self.server.sockets[0].getsockname()[:2]
        return host, port

    async def run(self, queue: asyncio.Queue) -> None:
        """Accept connections forever, putting every decoded message on ``queue``."""
        self._queue = queue
        logger.info("P2P network running.")
        await self.server.serve_forever()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        addr = writer.get_extra_info("peername")
        logger.info("New connection from %s", addr)
        try:
            while True:
                try:
                    chunk = await reader.read(READ_SIZE)
                except OSError as exc:
                    logger.warning("Failed to read from stream: %s", exc)
                    break
                if not chunk:
                    logger.info("Connection with %s closed.", addr)
                    break
                try:
                    message = P2pMessage.decode(chunk)
                except ValueError:
                    continue
                logger.info("Received message: %r", message)
                if self._queue is not None:
                    await self._queue.put(message)
        finally:
            writer.close()

    async def broadcast_message(self, message: P2pMessage) -> None:
        """Send ``message`` to every connected peer."""
        logger.info("Broadcasting message: %r", message)
        data = message.encode()
        for peer in self.peers.values():
            await peer.send(data)

    async def close(self) -> None:
        self.server.close()
        for peer in self.peers.values():
            await peer.close()
        self.peers.clear()
        with contextlib.suppress(OSError):
            await self.server.wait_closed()