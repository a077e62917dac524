from __future__ import annotations

import sys
from typing import BinaryIO

from loguru import logger

from .core.transport.defaults import (
    DEFAULT_CONNECT_ADDRESS,
    DEFAULT_GREETING,
    ECHO_BUFFER_SIZE,
)
from .core.transport.interfaces import (
    ByteStream,
    ListeningHandle,
    StreamIOError,
    Transport,
)


async def send_hello[ListenerT: ListeningHandle, StreamT: ByteStream](
    transport: Transport[ListenerT, StreamT],
    address: str = DEFAULT_CONNECT_ADDRESS,
    *,
    greeting: bytes = DEFAULT_GREETING,
    output: BinaryIO | None = None,
) -> int:
    """Send ``greeting`` and relay every byte the peer sends back.

    Relaying stops when the peer closes the connection. Bytes are written to
    ``output`` (default: standard output) exactly as received.

    Returns:
        Number of bytes relayed

    Raises:
        ConnectError: If the connection cannot be established
        StreamIOError: If the connection or the output fails mid-transfer
    """
    if output is None:
        output = sys.stdout.buffer

    stream = await transport.connect(address)
    logger.debug("[{}] connected to {}", transport.name, address)

    relayed = 0
    async with stream:
        await stream.write_all(greeting)
        while True:
            data = await stream.read(ECHO_BUFFER_SIZE)
            if not data:
                break
            try:
                output.write(data)
                output.flush()
            except OSError as e:
                raise StreamIOError(f"Failed to write to output: {e}") from e
            relayed += len(data)

    logger.debug("[{}] {} closed after {} bytes", transport.name, address, relayed)
    return relayed
