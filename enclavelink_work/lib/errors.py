#!/usr/bin/env python3
"""Exception hierarchy shared by the library and the role processes."""


class EnclaveLinkError(Exception):
    """Base exception for all EnclaveLink failures."""


class ConfigError(EnclaveLinkError):
    """Manifest or command line configuration is unusable."""

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("invalid configuration: " + ", ".join(self.errors))


class KeyFileError(EnclaveLinkError):
    """A raw key file is missing, unreadable or the wrong size."""


class AuthenticationFailure(EnclaveLinkError):
    """AEAD open failed: tag mismatch, truncated ciphertext or wrong AAD."""


class ProtocolError(EnclaveLinkError):
    """A channel frame or response could not be interpreted."""


class AttestationFetchError(EnclaveLinkError):
    """The attestation document could not be retrieved."""


class VerificationError(EnclaveLinkError):
    """Attestation verification failed. No partial trust is implied."""


class DocumentParseError(VerificationError):
    """The signed envelope or its payload is malformed or incomplete."""


class ImageIdMismatch(VerificationError):
    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"image_id mismatch: expected {expected}, got {actual}")


class SignatureError(VerificationError):
    """The envelope signature does not verify under the leaf certificate."""


class CertificateChainError(VerificationError):
    """A link of the certificate chain failed signature, issuer or validity checks."""


class RootMismatch(CertificateChainError):
    """The chain does not end in the pinned root certificate."""


class MessageTooLarge(ProtocolError):
    """A peer sent more bytes than the configured limit before end-of-stream."""
