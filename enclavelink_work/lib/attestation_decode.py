#!/usr/bin/env python3
"""
attestation_decode.py — Parses a Nitro-style attestation document.

The document is a COSE_Sign1 envelope (tagged or untagged) whose payload is
a CBOR map. Nothing here checks signatures or certificates: the values come
back exactly as the attesting party claimed them.
"""
from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import cbor2
from pycose.exceptions import CoseException
from pycose.messages import Sign1Message

from .common import run_cli, b64d, b64u, require_fields
from .errors import DocumentParseError
from .image_id import image_id_from_pcrs

COSE_SIGN1_TAG = 18
REQUIRED = ["pcrs", "certificate", "cabundle", "timestamp", "public_key"]


@dataclass
class AttestationDocument:
    pcrs: Dict[int, bytes]
    certificate: bytes
    cabundle: List[bytes]
    timestamp: int  # milliseconds since the Unix epoch
    public_key: bytes
    module_id: Optional[str] = None
    digest: Optional[str] = None
    user_data: Optional[bytes] = None
    nonce: Optional[bytes] = None
    extra: dict = field(default_factory=dict)

    @property
    def timestamp_seconds(self) -> int:
        return self.timestamp // 1000


def decode_envelope(document_bytes: bytes) -> Sign1Message:
    """Split the signed envelope without trusting its payload."""
    try:
        obj = cbor2.loads(document_bytes)
    except (cbor2.CBORDecodeError, ValueError, TypeError) as e:
        raise DocumentParseError(f"attestation doc is not CBOR: {e}") from e

    if isinstance(obj, cbor2.CBORTag):
        if obj.tag != COSE_SIGN1_TAG:
            raise DocumentParseError(f"unexpected CBOR tag {obj.tag}, expected COSE_Sign1")
        obj = obj.value

    # Values under a tag may decode as immutable containers (tuple, frozen map).
    if not isinstance(obj, (list, tuple)) or len(obj) != 4:
        raise DocumentParseError("attestation doc is not a COSE_Sign1 structure")
    phdr, uhdr, payload, signature = obj
    if not (isinstance(phdr, bytes) and isinstance(uhdr, Mapping)
            and isinstance(payload, bytes) and isinstance(signature, bytes)):
        raise DocumentParseError("COSE_Sign1 members have unexpected types")

    try:
        return Sign1Message.from_cose_obj([phdr, dict(uhdr), payload, signature], True)
    except (CoseException, cbor2.CBORDecodeError, ValueError, TypeError, KeyError, AttributeError) as e:
        raise DocumentParseError(f"invalid COSE_Sign1 headers: {e}") from e


def parse_payload(payload: bytes) -> AttestationDocument:
    try:
        doc = cbor2.loads(payload)
    except (cbor2.CBORDecodeError, ValueError, TypeError) as e:
        raise DocumentParseError(f"attestation payload is not CBOR: {e}") from e
    if not isinstance(doc, Mapping):
        raise DocumentParseError("attestation payload is not a map")

    missing = require_fields(doc, REQUIRED)
    if missing:
        raise DocumentParseError(f"{missing[0]} key not found in attestation doc")

    pcrs = doc["pcrs"]
    if not isinstance(pcrs, Mapping):
        raise DocumentParseError("pcrs is not a map")

    certificate = doc["certificate"]
    if not isinstance(certificate, bytes):
        raise DocumentParseError("certificate is not bytes")

    cabundle = doc["cabundle"]
    if not isinstance(cabundle, (list, tuple)) or not all(isinstance(c, bytes) for c in cabundle):
        raise DocumentParseError("cabundle is not a list of bytes")

    timestamp = doc["timestamp"]
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        raise DocumentParseError("timestamp is not an integer")
    if timestamp < 0:
        raise DocumentParseError("timestamp is negative")

    public_key = doc["public_key"]
    if not isinstance(public_key, bytes):
        raise DocumentParseError("public key not found in attestation doc")

    known = set(REQUIRED) | {"module_id", "digest", "user_data", "nonce"}
    return AttestationDocument(
        pcrs=dict(pcrs),
        certificate=certificate,
        cabundle=list(cabundle),
        timestamp=timestamp,
        public_key=public_key,
        module_id=doc.get("module_id"),
        digest=doc.get("digest"),
        user_data=doc.get("user_data"),
        nonce=doc.get("nonce"),
        extra={k: v for k, v in doc.items() if k not in known},
    )


def decode_document(document_bytes: bytes) -> tuple[Sign1Message, AttestationDocument]:
    msg = decode_envelope(document_bytes)
    return msg, parse_payload(msg.payload)


def summarize(doc: AttestationDocument) -> dict:
    """JSON-friendly, unverified view of a document."""
    try:
        image_id = image_id_from_pcrs(doc.pcrs)
    except DocumentParseError:
        image_id = None
    return {
        "module_id": doc.module_id,
        "digest": doc.digest,
        "timestamp": doc.timestamp,
        "pcrs": {str(k): v.hex() for k, v in sorted(doc.pcrs.items())
                 if isinstance(k, int) and isinstance(v, bytes)},
        "image_id_hex": image_id,
        "public_key_hex": doc.public_key.hex(),
        "cabundle_len": len(doc.cabundle),
    }


def decode(d: dict) -> dict:
    _, doc = decode_document(b64d(d["document_b64url"]))
    out = summarize(doc)
    out["certificate_b64url"] = b64u(doc.certificate)
    return {"document": out}

if __name__ == "__main__":
    run_cli(decode)
