#!/usr/bin/env python3
"""Signs an attestation payload as an untagged COSE_Sign1 (ES384)."""
import cbor2
from .common import run_cli, b64d, b64u
from pycose.messages import Sign1Message
from pycose.headers import Algorithm
from pycose.algorithms import Es384
from pycose.keys import EC2Key
from pycose.keys.curves import P384
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization

P384_LEN = 48

def private_cose_key(private_key: ec.EllipticCurvePrivateKey) -> EC2Key:
    if private_key.curve.name != "secp384r1":
        raise ValueError("ES384 signing needs a P-384 key")
    nums = private_key.private_numbers()
    pub = nums.public_numbers
    return EC2Key(
        crv=P384,
        x=pub.x.to_bytes(P384_LEN, "big"),
        y=pub.y.to_bytes(P384_LEN, "big"),
        d=nums.private_value.to_bytes(P384_LEN, "big"),
    )

def sign_payload(payload: bytes, private_key: ec.EllipticCurvePrivateKey) -> bytes:
    msg = Sign1Message(phdr={Algorithm: Es384}, uhdr={}, payload=payload)
    msg.key = private_cose_key(private_key)
    return msg.encode(tag=False)

def sign_document(claims: dict, private_key: ec.EllipticCurvePrivateKey) -> bytes:
    """CBOR-encode the attestation claims and wrap them in COSE_Sign1."""
    return sign_payload(cbor2.dumps(claims), private_key)

def sign(d: dict) -> dict:
    private_key = serialization.load_pem_private_key(d["privkey_pem"].encode("ascii"), password=None)
    if not isinstance(private_key, ec.EllipticCurvePrivateKey):
        raise ValueError("privkey_pem is not an EC private key")
    return {"cose_sign1_b64url": b64u(sign_payload(b64d(d["payload_b64url"]), private_key))}

if __name__ == "__main__":
    run_cli(sign)
