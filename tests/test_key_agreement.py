"""Unit tests for X25519 agreement and channel key derivation."""

import pytest

from enclavelink_work.lib import derive_channel_key, x25519_agree, x25519_keygen
from enclavelink_work.lib.common import b64d, b64u
from enclavelink_work.lib.derive_channel_key import KDF_HKDF_SHA256, KDF_RAW, channel_key
from enclavelink_work.lib.x25519_agree import shared_secret


class TestSharedSecret:

    def test_symmetric(self):
        a_priv, a_pub = x25519_keygen.generate_raw()
        b_priv, b_pub = x25519_keygen.generate_raw()
        assert shared_secret(a_priv, b_pub) == shared_secret(b_priv, a_pub)

    def test_symmetric_over_sample(self):
        for _ in range(20):
            a_priv, a_pub = x25519_keygen.generate_raw()
            b_priv, b_pub = x25519_keygen.generate_raw()
            z = shared_secret(a_priv, b_pub)
            assert len(z) == 32
            assert z == shared_secret(b_priv, a_pub)

    def test_different_peers_differ(self):
        a_priv, _ = x25519_keygen.generate_raw()
        _, b_pub = x25519_keygen.generate_raw()
        _, c_pub = x25519_keygen.generate_raw()
        assert shared_secret(a_priv, b_pub) != shared_secret(a_priv, c_pub)

    def test_low_order_point_yields_zero_secret(self):
        a_priv, _ = x25519_keygen.generate_raw()
        assert shared_secret(a_priv, bytes(32)) == bytes(32)

    def test_public_from_private(self):
        priv, pub = x25519_keygen.generate_raw()
        assert x25519_keygen.public_from_private(priv) == pub

    def test_wrong_length_rejected(self):
        priv, _ = x25519_keygen.generate_raw()
        with pytest.raises(ValueError):
            shared_secret(priv, b"\x01" * 31)

    def test_json_contract(self):
        a = x25519_keygen.generate()
        b = x25519_keygen.generate()
        ab = x25519_agree.agree({"privkey_b64url": a["privkey_b64url"], "peer_pubkey_b64url": b["pubkey_b64url"]})
        ba = x25519_agree.agree({"privkey_b64url": b["privkey_b64url"], "peer_pubkey_b64url": a["pubkey_b64url"]})
        assert ab == ba
        assert len(b64d(ab["shared_b64url"])) == 32


class TestChannelKey:

    def test_raw_is_shared_secret(self):
        z = bytes(range(32))
        assert channel_key(z, KDF_RAW) == z

    def test_default_is_raw(self):
        z = bytes(range(32))
        assert channel_key(z) == z

    def test_hkdf_is_deterministic_and_distinct(self):
        z = bytes(range(32))
        k1 = channel_key(z, KDF_HKDF_SHA256)
        k2 = channel_key(z, KDF_HKDF_SHA256)
        assert k1 == k2
        assert k1 != z
        assert len(k1) == 32

    def test_unknown_mode(self):
        with pytest.raises(ValueError, match="unknown kdf"):
            channel_key(bytes(32), "pbkdf2")

    def test_short_secret(self):
        with pytest.raises(ValueError):
            channel_key(bytes(16))

    def test_json_contract(self):
        z = bytes(range(32))
        out = derive_channel_key.derive({"shared_b64url": b64u(z), "kdf": KDF_HKDF_SHA256})
        assert b64d(out["channel_key_b64url"]) == channel_key(z, KDF_HKDF_SHA256)
