"""
responder.py - The enclave side of the channel.

Accepts connections, decrypts Deliver requests with the channel key shared
with the loader, and answers Compute requests over the last delivered
payload. Every connection runs in its own task; the read of each request is
bounded in size and time, so a stalled peer only ever holds up itself.
"""
import asyncio
from typing import Optional

from enclavelink.log import log, log_err
from enclavelink.stream import read_to_eof
from enclavelink_work.lib.channel_frame import (
    DECRYPT_FAILED,
    DELIVER_ACK,
    EMPTY_REQUEST,
    MSG_COMPUTE,
    MSG_DELIVER,
    NO_PAYLOAD,
    PAYLOAD_TOO_SHORT,
    REQUEST_TOO_LARGE,
    UNKNOWN_MSG,
    compute_result,
    message_type,
    open_deliver,
)
from enclavelink_work.lib.derive_channel_key import KDF_RAW, channel_key
from enclavelink_work.lib.errors import AuthenticationFailure, MessageTooLarge, ProtocolError
from enclavelink_work.lib.x25519_agree import shared_secret

DEFAULT_READ_TIMEOUT = 10.0
DEFAULT_MAX_REQUEST_BYTES = 65536


class PayloadStore:
    """
    Holds the most recently delivered plaintext.

    One lock guards the value; the last completed Deliver wins. Nothing is
    stored until decryption has succeeded.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._payload: Optional[bytes] = None

    async def put(self, payload: bytes) -> None:
        async with self._lock:
            self._payload = bytes(payload)

    async def get(self) -> Optional[bytes]:
        async with self._lock:
            return self._payload


class Responder:
    def __init__(
        self,
        key: bytes,
        store: Optional[PayloadStore] = None,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        max_request_bytes: int = DEFAULT_MAX_REQUEST_BYTES,
        role: str = "APP",
    ):
        self._key = key
        self.store = store or PayloadStore()
        self.read_timeout = read_timeout
        self.max_request_bytes = max_request_bytes
        self.role = role

    @classmethod
    def from_keys(cls, secret: bytes, loader_public: bytes, kdf: str = KDF_RAW, **kwargs):
        """Derive the channel key from our secret and the loader's public key."""
        return cls(channel_key(shared_secret(secret, loader_public), kdf), **kwargs)

    async def handle_request(self, request: bytes) -> bytes:
        """Dispatch one complete request and return the full response."""
        try:
            kind = message_type(request)
        except ProtocolError:
            log_err(self.role, "Empty request")
            return EMPTY_REQUEST

        if kind == MSG_DELIVER:
            try:
                payload = open_deliver(self._key, request)
            except AuthenticationFailure as e:
                log_err(self.role, f"Decrypt failed: {e}")
                return DECRYPT_FAILED
            await self.store.put(payload)
            log(self.role, f"Stored delivered payload ({len(payload)} bytes).")
            return DELIVER_ACK

        if kind == MSG_COMPUTE:
            payload = await self.store.get()
            if payload is None:
                log_err(self.role, "Compute requested before any payload was delivered")
                return NO_PAYLOAD
            try:
                return compute_result(payload)
            except ProtocolError:
                return PAYLOAD_TOO_SHORT

        log(self.role, f"Unknown message type {kind}")
        return UNKNOWN_MSG

    async def handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        try:
            try:
                request = await asyncio.wait_for(
                    read_to_eof(reader, self.max_request_bytes), self.read_timeout)
            except asyncio.TimeoutError:
                log_err(self.role, f"{peer}: no end-of-stream within {self.read_timeout}s, closing")
                return
            except MessageTooLarge as e:
                log_err(self.role, f"{peer}: {e}")
                response = REQUEST_TOO_LARGE
            else:
                response = await self.handle_request(request)

            writer.write(response)
            await writer.drain()
        except ConnectionError as e:
            log_err(self.role, f"{peer}: connection lost ({e})")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError as e:
                log_err(self.role, f"{peer}: close failed ({e})")

    async def start(self, host: str, port: int) -> asyncio.AbstractServer:
        server = await asyncio.start_server(self.handle_connection, host, port)
        addrs = ", ".join(str(s.getsockname()) for s in server.sockets)
        log(self.role, f"Listening on: {addrs}")
        return server

    async def serve_forever(self, host: str, port: int) -> None:
        server = await self.start(host, port)
        async with server:
            await server.serve_forever()
