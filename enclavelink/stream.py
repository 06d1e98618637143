"""Bounded end-of-stream reads for the EOF-delimited channel protocol."""
import asyncio

from enclavelink_work.lib.errors import MessageTooLarge

CHUNK_SIZE = 4096

async def read_to_eof(reader: asyncio.StreamReader, limit: int) -> bytes:
    """Read until the peer closes its write side, refusing more than `limit` bytes."""
    buf = bytearray()
    while True:
        chunk = await reader.read(CHUNK_SIZE)
        if not chunk:
            return bytes(buf)
        buf += chunk
        if len(buf) > limit:
            raise MessageTooLarge(f"peer sent more than {limit} bytes")
