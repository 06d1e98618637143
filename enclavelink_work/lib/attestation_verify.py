#!/usr/bin/env python3
"""
attestation_verify.py — Full verification of an attestation document.

Gates, in order; any failure raises and nothing is released:
  1. Envelope parse    COSE_Sign1 structure
  2. Payload parse     required fields present and well typed
  3. Identity          image id over PCR0/1/2/16 equals the expected id
  4. Signature         envelope verifies under the leaf certificate key
  5. Timestamp         the document's own clock, not ours, is the time basis
  6. Chain build       leaf + reversed cabundle
  7. Chain walk        signature, issuer and validity for every link
  8. Root pinning      last certificate equals the trusted root, byte for byte
On success the attested public key is returned.
"""
from __future__ import annotations
from .common import run_cli, b64d, b64u, ct_eq
from .errors import ImageIdMismatch
from . import attestation_decode, cert_chain_verify, cose_verify1_es384, image_id

def verify_document(document_bytes: bytes, trusted_root_pem: bytes, expected_image_id: str) -> bytes:
    msg = attestation_decode.decode_envelope(document_bytes)
    doc = attestation_decode.parse_payload(msg.payload)

    computed_image_id = image_id.image_id_from_pcrs(doc.pcrs)
    expected = expected_image_id.strip().lower()
    if not ct_eq(computed_image_id.encode(), expected.encode()):
        raise ImageIdMismatch(expected, computed_image_id)

    leaf = cert_chain_verify.load_der(doc.certificate)
    cose_verify1_es384.verify_envelope(msg, leaf)

    when = cert_chain_verify.attestation_time(doc.timestamp)

    chain = cert_chain_verify.build_chain(doc.certificate, doc.cabundle)
    cert_chain_verify.verify_chain(chain, trusted_root_pem, when)

    return doc.public_key

def verify(d: dict) -> dict:
    pub = verify_document(
        b64d(d["document_b64url"]),
        d["root_pem"].encode("ascii"),
        d["image_id_hex"],
    )
    return {"valid": True, "public_key_b64url": b64u(pub)}

if __name__ == "__main__":
    run_cli(verify)
