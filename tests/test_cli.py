import pytest

from enclavelink import cli
from enclavelink_work.lib.common import read_key_file, write_key_file
from enclavelink_work.lib.errors import AttestationFetchError, ConfigError
from enclavelink_work.lib.x25519_keygen import public_from_private


def run(argv):
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return exc.value.code


class TestParseMessage:

    def test_default(self):
        assert cli.parse_message(cli.DEFAULT_MESSAGE) == bytes([12, 43])

    def test_spaces_and_trailing_comma(self):
        assert cli.parse_message("1, 2,") == b"\x01\x02"

    @pytest.mark.parametrize("text", ["", "a,b", "256", "-1"])
    def test_rejected(self, text):
        with pytest.raises(ConfigError):
            cli.parse_message(text)


def test_keygen(tmp_path):
    sec, pub = tmp_path / "id.sec", tmp_path / "id.pub"
    assert run(["keygen", "--secret", str(sec), "--public", str(pub)]) == 0
    assert public_from_private(read_key_file(sec)) == read_key_file(pub)


@pytest.fixture
def root_file(tmp_path, pki):
    path = tmp_path / "root.pem"
    path.write_bytes(pki.root_pem)
    return path


class TestVerify:

    def test_publishes_attested_key(self, monkeypatch, tmp_path, root_file, pki, make_document,
                                    expected_image_id, app_keypair):
        document = make_document(pki)
        monkeypatch.setattr(cli, "fetch_attestation_document", lambda endpoint, **kw: document)
        out = tmp_path / "app.pub"
        code = run(["verify", "-e", "http://enclave/attestation/raw", "-a", str(out),
                    "-i", expected_image_id, "-r", str(root_file)])
        assert code == 0
        assert read_key_file(out) == app_keypair[1]

    def test_wrong_image_id_writes_nothing(self, monkeypatch, tmp_path, root_file, pki, make_document):
        document = make_document(pki)
        monkeypatch.setattr(cli, "fetch_attestation_document", lambda endpoint, **kw: document)
        out = tmp_path / "app.pub"
        code = run(["verify", "-e", "http://enclave", "-a", str(out), "-i", "00" * 32, "-r", str(root_file)])
        assert code == 1
        assert not out.exists()

    def test_fetch_failure(self, monkeypatch, tmp_path, root_file, expected_image_id):
        def fail(endpoint, **kw):
            raise AttestationFetchError("unreachable")

        monkeypatch.setattr(cli, "fetch_attestation_document", fail)
        code = run(["verify", "-e", "http://enclave", "-a", str(tmp_path / "app.pub"),
                    "-i", expected_image_id, "-r", str(root_file)])
        assert code == 1

    def test_missing_root(self, tmp_path, expected_image_id):
        code = run(["verify", "-e", "http://enclave", "-a", str(tmp_path / "app.pub"),
                    "-i", expected_image_id])
        assert code == 1

    def test_settings_from_manifest(self, monkeypatch, tmp_path, root_file, pki, make_document,
                                    expected_image_id):
        document = make_document(pki)
        seen = {}

        def fake_fetch(endpoint, **kw):
            seen["endpoint"] = endpoint
            seen.update(kw)
            return document

        monkeypatch.setattr(cli, "fetch_attestation_document", fake_fetch)
        manifest = tmp_path / "manifest.yaml"
        manifest.write_text(
            "attestation:\n"
            "  endpoint: http://from-manifest/attestation/raw\n"
            f"  trusted_root: {root_file}\n"
            f"  image_id: {expected_image_id}\n"
            "  max_attempts: 5\n")
        code = run(["verify", "-a", str(tmp_path / "app.pub"), "--config", str(manifest)])
        assert code == 0
        assert seen["endpoint"] == "http://from-manifest/attestation/raw"
        assert seen["max_attempts"] == 5


def test_decode_file(tmp_path, capsys, pki, make_document, expected_image_id):
    path = tmp_path / "doc.cbor"
    path.write_bytes(make_document(pki))
    assert run(["decode", "-f", str(path)]) == 0
    out = capsys.readouterr().out
    assert "UNVERIFIED" in out
    assert expected_image_id in out


def test_decode_garbage(tmp_path):
    path = tmp_path / "doc.cbor"
    path.write_bytes(b"\xff\xff")
    assert run(["decode", "-f", str(path)]) == 1


def test_send_without_secret(tmp_path):
    app = tmp_path / "app.pub"
    write_key_file(app, bytes(32))
    assert run(["send", "-i", "127.0.0.1:1", "-a", str(app)]) == 1


def test_send_bad_message(tmp_path):
    sec, app = tmp_path / "id.sec", tmp_path / "app.pub"
    write_key_file(sec, bytes(range(32)), secret=True)
    write_key_file(app, bytes(range(32)))
    assert run(["send", "-i", "127.0.0.1:1", "-s", str(sec), "-a", str(app), "-m", "300"]) == 1


def test_serve_requires_keys(tmp_path):
    assert run(["serve", "-i", "127.0.0.1:0"]) == 1
