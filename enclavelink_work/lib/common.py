#!/usr/bin/env python3
"""
common.py — Shared helpers for EnclaveLink library CLIs.

All CLIs follow the same contract:
- Read a single JSON object from STDIN.
- Write a single JSON object to STDOUT.
- Fail with a non‑zero exit on any error, printing a short message to STDERR.

Binary values are encoded as *unpadded* base64url. Key material on disk is
raw: exactly 32 bytes, no encoding or framing.
"""
from __future__ import annotations
import sys, json, base64, hmac, re, os, pathlib

from .errors import KeyFileError

KEY_LEN = 32

# ---------- Base64url (unpadded) ----------
def b64u(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")

def b64d(s: str) -> bytes:
    pad = "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode(s + pad)

# ---------- JSON IO ----------
def read_json_stdin() -> dict:
    try:
        return json.load(sys.stdin)
    except Exception as e:
        print(f"error: invalid JSON on stdin: {e}", file=sys.stderr)
        sys.exit(2)

def write_json(obj: dict) -> None:
    json.dump(obj, sys.stdout, separators=(",",":"))
    sys.stdout.write("\n")

def run_cli(fn) -> None:
    """Entry point shared by every `python -m enclavelink_work.lib.<x>`."""
    try:
        write_json(fn(read_json_stdin()))
    except Exception as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)

# ---------- Validation helpers ----------
_HEX64 = re.compile(r"^[0-9a-f]{64}$")
def is_sha256_hex(s: str) -> bool:
    return bool(_HEX64.fullmatch(s))

def ct_eq(a, b) -> bool:
    # constant‑time compare for hex strings or raw bytes
    return hmac.compare_digest(a, b)

def require_fields(obj: dict, keys: list[str]) -> list[str]:
    missing = [k for k in keys if k not in obj]
    return missing

# ---------- Raw key files ----------
def read_key_file(path) -> bytes:
    """Read a raw 32-byte key. Trailing bytes beyond the key are ignored."""
    try:
        with open(path, "rb") as f:
            data = f.read(KEY_LEN)
    except OSError as e:
        raise KeyFileError(f"cannot read key file {path}: {e}") from e
    if len(data) != KEY_LEN:
        raise KeyFileError(f"key file {path} holds {len(data)} bytes, expected {KEY_LEN}")
    return data

def write_key_file(path, data: bytes, secret: bool = False) -> None:
    """
    Atomically write a raw key file.
    Secrets are created with mode 0600 before any byte is written.
    """
    if len(data) != KEY_LEN:
        raise KeyFileError(f"refusing to write {len(data)}-byte key to {path}")
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp_p = p.with_suffix(p.suffix + ".tmp")
    fd = os.open(tmp_p, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600 if secret else 0o644)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    tmp_p.replace(p)  # Atomic on POSIX
