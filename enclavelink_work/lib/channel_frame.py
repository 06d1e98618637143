#!/usr/bin/env python3
"""
channel_frame.py — Wire format of the single-shot channel request.

    byte 0      type tag
    Deliver(0)  bytes 1..12 nonce, bytes 13.. ciphertext‖tag, AAD = 0x00
    Compute(1)  no body
    other       answered with UNKNOWN_MSG

One request per connection; the request is everything the initiator sends
before closing its write side, and the response is everything the
responder sends before closing the connection. No length prefixes.
"""
from __future__ import annotations
from typing import Optional

from .common import run_cli, b64d, b64u
from .errors import ProtocolError
from .aead_seal import NONCE_LEN, new_nonce, seal_bytes
from .aead_open import open_bytes

MSG_DELIVER = 0
MSG_COMPUTE = 1

DELIVER_AAD = b"\x00"

# Response literals. DELIVER_ACK keeps the deployed spelling byte for byte.
DELIVER_ACK = b"Data write suceeded!"
UNKNOWN_MSG = b"Unknown msg"
DECRYPT_FAILED = b"Decrypt failed"
EMPTY_REQUEST = b"Empty request"
NO_PAYLOAD = b"No payload delivered"
PAYLOAD_TOO_SHORT = b"Payload too short"
REQUEST_TOO_LARGE = b"Request too large"
RESULT_PREFIX = b"Result: "

def encode_deliver(key: bytes, plaintext: bytes, nonce: Optional[bytes] = None) -> bytes:
    if nonce is None:
        nonce = new_nonce()
    ct = seal_bytes(key, nonce, plaintext, DELIVER_AAD)
    return bytes([MSG_DELIVER]) + nonce + ct

def encode_compute() -> bytes:
    return bytes([MSG_COMPUTE])

def message_type(frame: bytes) -> int:
    if not frame:
        raise ProtocolError("empty request")
    return frame[0]

def open_deliver(key: bytes, frame: bytes) -> bytes:
    """Decrypt a Deliver frame. Raises AuthenticationFailure on any tampering."""
    if message_type(frame) != MSG_DELIVER:
        raise ProtocolError(f"not a deliver frame (type {frame[0]})")
    nonce = frame[1:1 + NONCE_LEN]
    return open_bytes(key, nonce, frame[1 + NONCE_LEN:], DELIVER_AAD)

def compute_result(payload: bytes) -> bytes:
    """Placeholder workload: sum of the first two payload bytes, mod 256."""
    if len(payload) < 2:
        raise ProtocolError("payload too short")
    return RESULT_PREFIX + str((payload[0] + payload[1]) % 256).encode("ascii")

def parse_result(response: bytes) -> int:
    if not response.startswith(RESULT_PREFIX):
        raise ProtocolError(f"unexpected response {response[:64]!r}")
    try:
        return int(response[len(RESULT_PREFIX):])
    except ValueError as e:
        raise ProtocolError(f"malformed result {response[:64]!r}") from e

def deliver(d: dict) -> dict:
    nonce = b64d(d["nonce_b64url"]) if "nonce_b64url" in d else None
    frame = encode_deliver(b64d(d["key_b64url"]), b64d(d["plaintext_b64url"]), nonce)
    return {"frame_b64url": b64u(frame)}

if __name__ == "__main__":
    run_cli(deliver)
