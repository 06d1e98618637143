#!/usr/bin/env python3
"""
cert_chain_verify.py — Walks an attestation certificate chain.

The chain is [leaf, intermediate_n, ..., root]: the leaf certificate
followed by the document's cabundle reversed (the bundle travels root
first). Every adjacent pair is checked for signature, issuer/subject
binding and validity at the attestation time. The chain must end in a
certificate byte-identical to the pinned root; no system trust store is
consulted.
"""
from __future__ import annotations
from datetime import datetime, timezone

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, padding, rsa
from cryptography.hazmat.primitives.serialization import Encoding

from .common import run_cli, b64d, ct_eq
from .errors import CertificateChainError, DocumentParseError, RootMismatch

def load_der(der: bytes, what: str = "certificate") -> x509.Certificate:
    try:
        return x509.load_der_x509_certificate(der)
    except ValueError as e:
        raise DocumentParseError(f"{what} is not a DER certificate: {e}") from e

def load_root(root_pem: bytes) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(root_pem)
    except ValueError as e:
        raise CertificateChainError(f"trusted root is not a PEM certificate: {e}") from e

def build_chain(leaf_der: bytes, cabundle: list[bytes]) -> list[bytes]:
    return [leaf_der] + list(reversed(cabundle))

def attestation_time(timestamp_ms: int) -> datetime:
    try:
        return datetime.fromtimestamp(timestamp_ms // 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError) as e:
        raise DocumentParseError(f"timestamp out of range: {timestamp_ms}") from e

def signed_by(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    try:
        key = issuer.public_key()
        if isinstance(key, ec.EllipticCurvePublicKey):
            key.verify(cert.signature, cert.tbs_certificate_bytes,
                       ec.ECDSA(cert.signature_hash_algorithm))
        elif isinstance(key, rsa.RSAPublicKey):
            key.verify(cert.signature, cert.tbs_certificate_bytes,
                       padding.PKCS1v15(), cert.signature_hash_algorithm)
        elif isinstance(key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
            key.verify(cert.signature, cert.tbs_certificate_bytes)
        else:
            return False
    except (InvalidSignature, UnsupportedAlgorithm, ValueError, TypeError):
        return False
    return True

def _extension(cert: x509.Certificate, ext_type):
    try:
        return cert.extensions.get_extension_for_class(ext_type).value
    except x509.ExtensionNotFound:
        return None
    except ValueError as e:
        raise CertificateChainError(f"malformed extensions in {cert.subject.rfc4514_string()}: {e}") from e

def issued(issuer: x509.Certificate, cert: x509.Certificate) -> bool:
    """Name and key-identifier binding between `issuer` and `cert`."""
    if issuer.subject != cert.issuer:
        return False
    aki = _extension(cert, x509.AuthorityKeyIdentifier)
    ski = _extension(issuer, x509.SubjectKeyIdentifier)
    if aki is not None and aki.key_identifier is not None and ski is not None:
        if aki.key_identifier != ski.digest:
            return False
    usage = _extension(issuer, x509.KeyUsage)
    if usage is not None and not usage.key_cert_sign:
        return False
    return True

def valid_at(cert: x509.Certificate, when: datetime) -> bool:
    return cert.not_valid_before_utc <= when <= cert.not_valid_after_utc

def verify_chain(chain_der: list[bytes], root_pem: bytes, when: datetime) -> list[x509.Certificate]:
    if not chain_der:
        raise CertificateChainError("empty certificate chain")
    certs = [load_der(der, f"chain certificate {i}") for i, der in enumerate(chain_der)]

    for i in range(len(certs) - 1):
        cert, issuer = certs[i], certs[i + 1]
        if not signed_by(cert, issuer):
            raise CertificateChainError(f"signature verification failed at chain index {i}")
        if not issued(issuer, cert):
            raise CertificateChainError(
                f"certificate issuer and subject verification failed at chain index {i}")
        if not valid_at(cert, when):
            raise CertificateChainError(
                f"certificate timestamp expired/not valid at chain index {i} "
                f"({cert.subject.rfc4514_string()} at {when.isoformat()})")

    root = load_root(root_pem)
    if not ct_eq(chain_der[-1], root.public_bytes(Encoding.DER)):
        raise RootMismatch("root certificate mismatch")
    return certs

def verify(d: dict) -> dict:
    chain = build_chain(b64d(d["certificate_b64url"]), [b64d(c) for c in d["cabundle_b64url"]])
    verify_chain(chain, d["root_pem"].encode("ascii"), attestation_time(int(d["timestamp_ms"])))
    return {"valid": True, "chain_len": len(chain)}

if __name__ == "__main__":
    run_cli(verify)
