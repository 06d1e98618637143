#!/usr/bin/env python3
"""
image_id.py — Derives the enclave image identity from PCR measurements.

image_id = SHA-256( BE32(bitmask) || PCR0 || PCR1 || PCR2 || PCR16 )

The bitmask names the PCRs that take part (0, 1, 2 and 16). PCR16 is
optional in the attestation document and counts as 48 zero bytes when it
is absent.
"""
from __future__ import annotations
import hashlib
from .common import run_cli, b64d
from .errors import DocumentParseError

PCR_LEN = 48
IMAGE_ID_PCRS = (0, 1, 2, 16)
PCR_BITMASK = (1 << 0) | (1 << 1) | (1 << 2) | (1 << 16)

def compute_image_id(pcr0: bytes, pcr1: bytes, pcr2: bytes, pcr16: bytes) -> str:
    hasher = hashlib.sha256()
    hasher.update(PCR_BITMASK.to_bytes(4, "big"))
    hasher.update(pcr0)
    hasher.update(pcr1)
    hasher.update(pcr2)
    hasher.update(pcr16)
    return hasher.hexdigest()

def extract_pcr(pcrs: dict, index: int) -> bytes:
    if index not in pcrs:
        raise DocumentParseError(f"pcr{index} not found")
    pcr = pcrs[index]
    if not isinstance(pcr, bytes):
        raise DocumentParseError(f"pcr{index} is not bytes")
    return pcr

def extract_pcr_optional(pcrs: dict, index: int) -> bytes:
    # Absent means all zeros. A present value that is not a byte string is
    # an error, not zeros.
    if index not in pcrs:
        return bytes(PCR_LEN)
    return extract_pcr(pcrs, index)

def image_id_from_pcrs(pcrs: dict) -> str:
    return compute_image_id(
        extract_pcr(pcrs, 0),
        extract_pcr(pcrs, 1),
        extract_pcr(pcrs, 2),
        extract_pcr_optional(pcrs, 16),
    )

def hash_pcrs(d: dict) -> dict:
    # JSON object keys are strings; PCR indices are ints in the document
    pcrs = {int(k): b64d(v) for k, v in d["pcrs_b64url"].items()}
    return {"image_id_hex": image_id_from_pcrs(pcrs)}

if __name__ == "__main__":
    run_cli(hash_pcrs)
