#!/usr/bin/env python3
"""
Derives the symmetric channel key from an X25519 shared secret.

"raw" uses the shared secret as the ChaCha20-Poly1305 key unchanged, which is
what deployed peers expect on the wire. "hkdf-sha256" stretches it with a
fixed salt and context string; both ends must agree on the mode.
"""
from .common import run_cli, b64d, b64u, KEY_LEN
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives import hashes

KDF_RAW = "raw"
KDF_HKDF_SHA256 = "hkdf-sha256"
KDF_MODES = (KDF_RAW, KDF_HKDF_SHA256)

SALT = b"EnclaveLink:salt:channel:v1"
INFO = b"EnclaveLink:info:channel:v1"

def channel_key(shared: bytes, kdf: str = KDF_RAW) -> bytes:
    if len(shared) != KEY_LEN:
        raise ValueError(f"shared secret must be {KEY_LEN} bytes")
    if kdf == KDF_RAW:
        return shared
    if kdf == KDF_HKDF_SHA256:
        hkdf = HKDF(algorithm=hashes.SHA256(), length=KEY_LEN, salt=SALT, info=INFO)
        return hkdf.derive(shared)
    raise ValueError(f"unknown kdf mode {kdf!r}")

def derive(d: dict) -> dict:
    key = channel_key(b64d(d["shared_b64url"]), d.get("kdf", KDF_RAW))
    return {"channel_key_b64url": b64u(key)}

if __name__ == "__main__":
    run_cli(derive)
