#!/usr/bin/env python3
"""Generates a random X25519 keypair."""
from .common import run_cli, b64u
from cryptography.hazmat.primitives.asymmetric import x25519

def generate_raw() -> tuple[bytes, bytes]:
    sk = x25519.X25519PrivateKey.generate()
    return sk.private_bytes_raw(), sk.public_key().public_bytes_raw()

def public_from_private(priv: bytes) -> bytes:
    sk = x25519.X25519PrivateKey.from_private_bytes(priv)
    return sk.public_key().public_bytes_raw()

def generate(d: dict = None) -> dict:
    priv, pub = generate_raw()
    return {
        "privkey_b64url": b64u(priv),
        "pubkey_b64url": b64u(pub)
    }

if __name__ == "__main__":
    run_cli(generate)
