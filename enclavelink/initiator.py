"""
initiator.py - The loader side of the channel.

The channel key is only as trustworthy as the peer public key it was
derived from; `Initiator.from_attestation` is the path that ties the key to
a fully verified attestation document.
"""
import asyncio

from enclavelink.stream import read_to_eof
from enclavelink_work.lib.attestation_verify import verify_document
from enclavelink_work.lib.channel_frame import encode_compute, encode_deliver
from enclavelink_work.lib.derive_channel_key import KDF_RAW, channel_key
from enclavelink_work.lib.x25519_agree import shared_secret

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_RESPONSE_BYTES = 65536


async def exchange(host, port, frame, timeout=DEFAULT_TIMEOUT, max_response_bytes=DEFAULT_MAX_RESPONSE_BYTES):
    """Send one frame, close our write side, return everything the peer answers."""

    async def _run():
        reader, writer = await asyncio.open_connection(host, port)
        try:
            writer.write(frame)
            await writer.drain()
            writer.write_eof()
            return await read_to_eof(reader, max_response_bytes)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass  # peer already gone; the response has been read

    return await asyncio.wait_for(_run(), timeout)


async def request_compute(host, port, timeout=DEFAULT_TIMEOUT):
    """Compute carries no body, so it needs no channel key."""
    return await exchange(host, port, encode_compute(), timeout)


class Initiator:
    def __init__(self, key, timeout=DEFAULT_TIMEOUT, max_response_bytes=DEFAULT_MAX_RESPONSE_BYTES):
        self._key = key
        self.timeout = timeout
        self.max_response_bytes = max_response_bytes

    @classmethod
    def from_keys(cls, secret, peer_public, kdf=KDF_RAW, **kwargs):
        return cls(channel_key(shared_secret(secret, peer_public), kdf), **kwargs)

    @classmethod
    def from_attestation(cls, secret, document_bytes, trusted_root_pem, expected_image_id,
                         kdf=KDF_RAW, **kwargs):
        """Verify the document first; its attested key becomes the peer key."""
        peer_public = verify_document(document_bytes, trusted_root_pem, expected_image_id)
        return cls.from_keys(secret, peer_public, kdf, **kwargs)

    def deliver_frame(self, plaintext):
        return encode_deliver(self._key, plaintext)

    async def deliver(self, host, port, plaintext):
        return await exchange(host, port, self.deliver_frame(plaintext),
                              self.timeout, self.max_response_bytes)

    async def compute(self, host, port):
        return await exchange(host, port, encode_compute(), self.timeout, self.max_response_bytes)
