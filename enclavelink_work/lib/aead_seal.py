#!/usr/bin/env python3
"""Seals a message with ChaCha20-Poly1305 under a channel key."""
import os
from .common import run_cli, b64d, b64u
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

NONCE_LEN = 12
TAG_LEN = 16

def new_nonce() -> bytes:
    return os.urandom(NONCE_LEN)

def seal_bytes(key: bytes, nonce: bytes, plaintext: bytes, aad: bytes = b"") -> bytes:
    """Returns ciphertext‖tag. The caller owns nonce uniqueness per key."""
    if len(nonce) != NONCE_LEN:
        raise ValueError(f"nonce must be {NONCE_LEN} bytes")
    return ChaCha20Poly1305(key).encrypt(nonce, plaintext, aad)

def seal(d: dict) -> dict:
    key = b64d(d["key_b64url"])
    nonce = b64d(d["nonce_b64url"]) if "nonce_b64url" in d else new_nonce()
    aad = b64d(d.get("aad_b64url", "")) if "aad_b64url" in d else b""
    ct = seal_bytes(key, nonce, b64d(d["plaintext_b64url"]), aad)
    return {"nonce_b64url": b64u(nonce), "ciphertext_b64url": b64u(ct)}

if __name__ == "__main__":
    run_cli(seal)
