"""Two-way message channel over a local Unix-domain socket.

Frame layout: 4-byte big-endian signed kind, 4-byte big-endian payload
length, payload bytes. Delivery order and reliability are the socket's.
"""

import asyncio
import logging
import struct
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

from install_protocol.exceptions import ProtocolViolation
from install_protocol.models.messages import (
    InstallerMessage,
    InstallerMessageKind,
    UpdaterMessage,
    UpdaterMessageKind,
)

Message = Union[InstallerMessage, UpdaterMessage]

HEADER = struct.Struct(">iI")
MAX_PAYLOAD_SIZE = 16 * 1024 * 1024  # 16MB

KIND_FOR_MESSAGE = {
    InstallerMessage: InstallerMessageKind,
    UpdaterMessage: UpdaterMessageKind,
}


def encode_frame(message: Message) -> bytes:
    """Encode a message as one wire frame."""
    return HEADER.pack(int(message.kind), len(message.payload)) + message.payload


class MessageChannel:
    """One end of an updater/installer channel.

    Each end sends one message family and receives the other.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        inbound: type,
        outbound: type,
        name: str = "channel",
    ):
        """Initialize channel around connected streams.

        Args:
            reader: Connected stream reader
            writer: Connected stream writer
            inbound: Message class received (InstallerMessage or UpdaterMessage)
            outbound: Message class sent (the other family)
            name: Label used in log lines
        """
        if inbound is outbound or {inbound, outbound} != set(KIND_FOR_MESSAGE):
            raise ValueError("A channel must send one message family and receive the other")
        self.logger = logging.getLogger("install_protocol.channel")
        self.name = name
        self._reader = reader
        self._writer = writer
        self._inbound = inbound
        self._outbound = outbound
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Message) -> None:
        """Send one message.

        Raises:
            TypeError: If message belongs to the inbound family
            ConnectionError: If the channel is closed
        """
        if not isinstance(message, self._outbound):
            raise TypeError(
                f"{self.name} sends {self._outbound.__name__}, got {type(message).__name__}"
            )
        if self._closed:
            raise ConnectionError(f"{self.name} is closed")
        self._writer.write(encode_frame(message))
        await self._writer.drain()
        self.logger.debug(f"{self.name} sent {message}")

    async def receive(self) -> Optional[Message]:
        """Receive one message.

        Returns:
            The next message, or None once the peer closed the channel

        Raises:
            ProtocolViolation: If a frame carries an unknown kind or oversized payload
        """
        if self._closed:
            return None
        try:
            header = await self._reader.readexactly(HEADER.size)
            raw_kind, length = HEADER.unpack(header)
            if length > MAX_PAYLOAD_SIZE:
                raise ProtocolViolation(
                    f"Payload of {length} bytes exceeds {MAX_PAYLOAD_SIZE}",
                    context={"channel": self.name},
                )
            payload = await self._reader.readexactly(length) if length else b""
        except (asyncio.IncompleteReadError, ConnectionResetError):
            self.logger.info(f"{self.name} closed by peer")
            await self.close()
            return None

        kind_enum = KIND_FOR_MESSAGE[self._inbound]
        try:
            kind = kind_enum(raw_kind)
        except ValueError:
            raise ProtocolViolation(
                f"Unknown {kind_enum.__name__} value {raw_kind}",
                context={"channel": self.name},
            ) from None

        message = self._inbound(kind=kind, payload=payload)
        self.logger.debug(f"{self.name} received {message}")
        return message

    async def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, BrokenPipeError) as e:
            self.logger.debug(f"{self.name} close error ignored: {e}")


async def open_channel(socket_path: Union[str, Path], name: str = "updater") -> MessageChannel:
    """Connect to an installer service (updater side).

    Raises:
        FileNotFoundError / ConnectionRefusedError: If no installer is listening
    """
    reader, writer = await asyncio.open_unix_connection(str(socket_path))
    return MessageChannel(reader, writer, inbound=InstallerMessage, outbound=UpdaterMessage, name=name)


async def serve_channel(
    socket_path: Union[str, Path],
    on_connect: Callable[[MessageChannel], Awaitable[None]],
    name: str = "installer",
) -> asyncio.AbstractServer:
    """Listen for updater connections (installer side).

    Args:
        socket_path: Socket path derived from the installer service name
        on_connect: Coroutine run once per accepted connection
        name: Label used in log lines

    Returns:
        Started asyncio server
    """
    path = Path(socket_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # A stale socket from a crashed installer would make bind fail.
    path.unlink(missing_ok=True)

    async def _accept(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        channel = MessageChannel(
            reader, writer, inbound=UpdaterMessage, outbound=InstallerMessage, name=name
        )
        await on_connect(channel)

    return await asyncio.start_unix_server(_accept, path=str(path))
