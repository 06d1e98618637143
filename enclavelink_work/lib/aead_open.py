#!/usr/bin/env python3
"""Opens a ChaCha20-Poly1305 ciphertext; fails closed."""
from .common import run_cli, b64d, b64u
from .errors import AuthenticationFailure
from .aead_seal import NONCE_LEN, TAG_LEN
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305

def open_bytes(key: bytes, nonce: bytes, ciphertext: bytes, aad: bytes = b"") -> bytes:
    cipher = ChaCha20Poly1305(key)
    if len(nonce) != NONCE_LEN or len(ciphertext) < TAG_LEN:
        raise AuthenticationFailure("ciphertext truncated")
    try:
        return cipher.decrypt(nonce, ciphertext, aad)
    except InvalidTag:
        raise AuthenticationFailure("authentication tag mismatch") from None

def open_sealed(d: dict) -> dict:
    aad = b64d(d.get("aad_b64url", "")) if "aad_b64url" in d else b""
    pt = open_bytes(b64d(d["key_b64url"]), b64d(d["nonce_b64url"]),
                    b64d(d["ciphertext_b64url"]), aad)
    return {"plaintext_b64url": b64u(pt)}

if __name__ == "__main__":
    run_cli(open_sealed)
