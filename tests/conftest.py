"""
Shared fixtures: a throwaway P-384 PKI (root -> intermediate -> leaf) and a
factory for signed attestation documents issued under it.
"""

import datetime as dt

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from enclavelink_work.lib.cose_sign1_es384 import sign_document
from enclavelink_work.lib.image_id import compute_image_id
from enclavelink_work.lib.x25519_keygen import generate_raw

UTC = dt.timezone.utc
ATTESTATION_TIME = dt.datetime(2025, 1, 1, 1, 0, tzinfo=UTC)
ATTESTATION_MS = int(ATTESTATION_TIME.timestamp()) * 1000

PCR0 = bytes([0x10]) * 48
PCR1 = bytes([0x11]) * 48
PCR2 = bytes([0x12]) * 48
PCR16 = bytes([0x16]) * 48


def _name(cn):
    return x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "EnclaveLink Test"),
        x509.NameAttribute(NameOID.COMMON_NAME, cn),
    ])


def issue_cert(subject_cn, subject_key, issuer_cn, issuer_key, not_before, not_after, ca=True, cert_sign=True):
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(subject_cn))
        .issuer_name(_name(issuer_cn))
        .public_key(subject_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(subject_key.public_key()), critical=False)
        .add_extension(x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
                       critical=False)
    )
    if ca:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=not cert_sign, content_commitment=False, key_encipherment=False,
                data_encipherment=False, key_agreement=False, key_cert_sign=cert_sign,
                crl_sign=cert_sign, encipher_only=False, decipher_only=False,
            ),
            critical=True,
        )
    return builder.sign(issuer_key, hashes.SHA384())


def der(cert):
    return cert.public_bytes(serialization.Encoding.DER)


class Pki:
    """Root, intermediate and leaf, with the validity windows given."""

    def __init__(self, root_validity=None, int_validity=None, leaf_validity=None):
        root_validity = root_validity or (dt.datetime(2020, 1, 1, tzinfo=UTC), dt.datetime(2050, 1, 1, tzinfo=UTC))
        int_validity = int_validity or (dt.datetime(2024, 1, 1, tzinfo=UTC), dt.datetime(2030, 1, 1, tzinfo=UTC))
        leaf_validity = leaf_validity or (dt.datetime(2025, 1, 1, tzinfo=UTC), dt.datetime(2025, 1, 1, 3, tzinfo=UTC))

        self.root_key = ec.generate_private_key(ec.SECP384R1())
        self.int_key = ec.generate_private_key(ec.SECP384R1())
        self.leaf_key = ec.generate_private_key(ec.SECP384R1())

        self.root_cert = issue_cert("root", self.root_key, "root", self.root_key, *root_validity)
        self.int_cert = issue_cert("intermediate", self.int_key, "root", self.root_key, *int_validity)
        self.leaf_cert = issue_cert("leaf", self.leaf_key, "intermediate", self.int_key, *leaf_validity, ca=False)

    @property
    def root_pem(self):
        return self.root_cert.public_bytes(serialization.Encoding.PEM)

    @property
    def cabundle(self):
        # As transmitted: root first
        return [der(self.root_cert), der(self.int_cert)]


@pytest.fixture
def make_pki():
    return Pki


@pytest.fixture
def pki():
    return Pki()


@pytest.fixture
def pcrs():
    return {0: PCR0, 1: PCR1, 2: PCR2, 16: PCR16}


@pytest.fixture
def expected_image_id():
    return compute_image_id(PCR0, PCR1, PCR2, PCR16)


@pytest.fixture
def app_keypair():
    """The enclave's X25519 key pair (private, public)."""
    return generate_raw()


@pytest.fixture
def loader_keypair():
    return generate_raw()


@pytest.fixture
def make_document(pcrs, app_keypair):
    """Build a signed document; keyword overrides replace payload fields."""

    def _make(pki, signing_key=None, drop=(), **overrides):
        claims = {
            "module_id": "i-0123456789abcdef0-enc0123456789abcdef",
            "digest": "SHA384",
            "timestamp": ATTESTATION_MS,
            "pcrs": dict(pcrs),
            "certificate": der(pki.leaf_cert),
            "cabundle": pki.cabundle,
            "public_key": app_keypair[1],
            "user_data": None,
            "nonce": None,
        }
        claims.update(overrides)
        for key in drop:
            del claims[key]
        return sign_document(claims, signing_key or pki.leaf_key)

    return _make
