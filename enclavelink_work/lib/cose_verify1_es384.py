#!/usr/bin/env python3
"""Verifies a COSE_Sign1 (ES384) envelope against the leaf certificate key."""
from .common import run_cli, b64d, b64u
from .errors import SignatureError
from .attestation_decode import decode_envelope
from pycose.messages import Sign1Message
from pycose.headers import Algorithm
from pycose.algorithms import Es384
from pycose.keys import EC2Key
from pycose.keys.curves import P384
from pycose.exceptions import CoseException
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec

P384_LEN = 48

def public_cose_key(cert: x509.Certificate) -> EC2Key:
    try:
        pub = cert.public_key()
    except (UnsupportedAlgorithm, ValueError) as e:
        raise SignatureError(f"leaf certificate key is unusable: {e}") from e
    if not isinstance(pub, ec.EllipticCurvePublicKey) or pub.curve.name != "secp384r1":
        raise SignatureError("leaf certificate does not carry a P-384 key")
    nums = pub.public_numbers()
    return EC2Key(crv=P384, x=nums.x.to_bytes(P384_LEN, "big"), y=nums.y.to_bytes(P384_LEN, "big"))

def verify_envelope(msg: Sign1Message, cert: x509.Certificate) -> None:
    """Raises SignatureError unless the envelope verifies under `cert`."""
    alg = msg.phdr.get(Algorithm)
    if getattr(alg, "identifier", alg) != Es384.identifier:
        raise SignatureError(f"unsupported COSE algorithm {alg!r}, expected ES384")

    msg.key = public_cose_key(cert)
    try:
        valid = msg.verify_signature()
    except (CoseException, ValueError, TypeError) as e:
        raise SignatureError(f"cose signature verification failed: {e}") from e
    if not valid:
        raise SignatureError("cose signature verification failed")

def verify(d: dict) -> dict:
    msg = decode_envelope(b64d(d["cose_sign1_b64url"]))
    cert = x509.load_der_x509_certificate(b64d(d["cert_der_b64url"]))
    try:
        verify_envelope(msg, cert)
        valid = True
    except SignatureError:
        valid = False
    return {"valid": valid, "payload_b64url": b64u(msg.payload or b"")}

if __name__ == "__main__":
    run_cli(verify)
