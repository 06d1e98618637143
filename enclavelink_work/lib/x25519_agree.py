#!/usr/bin/env python3
"""
x25519_agree.py — Raw X25519 Diffie-Hellman between a local secret and a peer
public key.

The peer key is not checked beyond what the curve operation itself rejects.
A low-order peer point produces the all-zero shared secret; the library
refuses to return that value, so it is reproduced here and the resulting
channel key simply never authenticates an honest peer's ciphertext.
"""
from .common import run_cli, b64d, b64u, KEY_LEN
from cryptography.hazmat.primitives.asymmetric import x25519

def shared_secret(priv: bytes, peer_pub: bytes) -> bytes:
    sk = x25519.X25519PrivateKey.from_private_bytes(priv)
    pk = x25519.X25519PublicKey.from_public_bytes(peer_pub)
    try:
        return sk.exchange(pk)
    except ValueError:
        # low-order point
        return bytes(KEY_LEN)

def agree(d: dict) -> dict:
    z = shared_secret(b64d(d["privkey_b64url"]), b64d(d["peer_pubkey_b64url"]))
    return {"shared_b64url": b64u(z)}

if __name__ == "__main__":
    run_cli(agree)
