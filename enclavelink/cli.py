#!/usr/bin/env python3
"""
cli.py - EnclaveLink - Attested key agreement for measured enclaves
============================================================================
Copyright 2025 Nathanael Ritz

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

     http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.

============================================================================

Three roles share one channel:

  Verifier  (VER)  fetches the enclave's attestation document, checks it
                   end to end and writes out the attested public key.
  App       (APP)  runs inside the enclave, holds the only secret that can
                   decrypt, stores delivered payloads and computes on them.
  Loader    (LDR)  derives the channel key from its secret and the attested
                   key, then delivers one encrypted payload per connection.

Verification gates (enclavelink_work.lib.attestation_verify):
  Gate 1: COSE_Sign1 envelope parse
  Gate 2: Payload parse (pcrs, certificate, cabundle, timestamp, public_key)
  Gate 3: Image ID over PCR0/1/2/16
  Gate 4: Envelope signature under the leaf certificate
  Gate 5: Attestation timestamp as the time basis
  Gate 6: Chain construction (leaf + reversed cabundle)
  Gate 7: Chain walk (signature, issuer, validity for every link)
  Gate 8: Root pinning
"""

import argparse
import asyncio
import json
import pathlib
import sys

from enclavelink import config as cfg
from enclavelink.attestation_source import fetch_attestation_document
from enclavelink.initiator import Initiator, request_compute
from enclavelink.log import log, log_err, reset_clock
from enclavelink.responder import Responder
from enclavelink_work.lib import (
    attestation_decode,  # Unverified document view
    attestation_verify,  # Gates 1-8
    x25519_keygen,       # Raw key pairs
)
from enclavelink_work.lib.common import read_key_file, write_key_file
from enclavelink_work.lib.errors import ConfigError, EnclaveLinkError

DEFAULT_MESSAGE = "12,43"

def parse_message(s):
    """`12,43` -> b'\\x0c+'"""
    try:
        values = [int(v) for v in s.split(",") if v.strip()]
    except ValueError:
        raise ConfigError(f"message:{s!r}:not_int_list") from None
    if not values or any(not 0 <= v <= 255 for v in values):
        raise ConfigError(f"message:{s!r}:not_byte_list")
    return bytes(values)

def read_root_pem(path):
    if not path:
        raise ConfigError("attestation.trusted_root:missing")
    try:
        return pathlib.Path(path).read_bytes()
    except OSError as e:
        raise ConfigError(f"attestation.trusted_root:{path}:{e}") from e

def require(value, name):
    if not value:
        raise ConfigError(f"{name}:missing")
    return value

def fetch(att, role):
    return fetch_attestation_document(
        require(att.endpoint, "attestation.endpoint"),
        timeout=att.timeout_sec,
        max_attempts=att.max_attempts,
        initial_delay=att.initial_delay_sec,
        max_delay=att.max_delay_sec,
        jitter=att.jitter,
        role=role,
    )

# ============================================================================
# KEY GENERATION
# ============================================================================

def keygen(args):
    role = "KEY"
    reset_clock()
    try:
        priv, pub = x25519_keygen.generate_raw()
        write_key_file(args.secret, priv, secret=True)
        write_key_file(args.public, pub)
    except EnclaveLinkError as e:
        log_err(role, f"FATAL: {e}")
        return 1
    log(role, f"Wrote {args.secret} and {args.public} (public {pub.hex()})")
    return 0

# ============================================================================
# VERIFIER PROCESS
# Fetches and verifies the attestation document, releases the attested key
# ============================================================================

def verify(args):
    role = "VER"
    reset_clock()
    log(role, "VERIFIER START")

    try:
        c = cfg.load_config(args.config, {
            "attestation": {
                "endpoint": args.endpoint,
                "image_id": args.image_id,
                "trusted_root": args.root_cert,
            },
        })
        att = c.attestation
        root_pem = read_root_pem(att.trusted_root)
        image_id = require(att.image_id, "attestation.image_id")

        document = fetch(att, role)
        pub_key = attestation_verify.verify_document(document, root_pem, image_id)
        log(role, f"verification successful with pubkey: {pub_key.hex()}")

        write_key_file(args.app, pub_key)
        log(role, f"PUBLISHED: {args.app}")
    except EnclaveLinkError as e:
        log_err(role, f"FATAL: {e}")
        return 1
    return 0

def decode(args):
    """
    Decode an attestation document without verifying it.
    Prints the claimed PCRs and the image ID they produce, which is how an
    operator learns the expected ID for a freshly built image.
    """
    role = "DEC"
    reset_clock()
    try:
        if args.file:
            document = pathlib.Path(args.file).read_bytes()
        else:
            c = cfg.load_config(args.config, {"attestation": {"endpoint": args.endpoint}})
            document = fetch(c.attestation, role)
        _, doc = attestation_decode.decode_document(document)
    except (EnclaveLinkError, OSError) as e:
        log_err(role, f"FATAL: {e}")
        return 1

    print("--- DECODED ATTESTATION DOCUMENT (UNVERIFIED) ---")
    print(json.dumps(attestation_decode.summarize(doc), indent=2, sort_keys=True))
    print("-------------------------------------------------")
    return 0

# ============================================================================
# APP PROCESS (responder)
# ============================================================================

def serve(args):
    role = "APP"
    reset_clock()

    try:
        c = cfg.load_config(args.config, {
            "responder": {
                "listen": args.ip_addr,
                "secret": args.secret,
                "loader": args.loader,
                "requester": args.requester,
            },
            "channel": {"kdf": args.kdf},
        })
        r = c.responder
        log(role, f"secret: {r.secret}, loader: {r.loader}, requester: {r.requester}")

        secret = read_key_file(require(r.secret, "responder.secret"))
        loader = read_key_file(require(r.loader, "responder.loader"))
        # Loaded so a missing or truncated file fails at start-up.
        read_key_file(require(r.requester, "responder.requester"))

        responder = Responder.from_keys(
            secret, loader, c.channel.kdf,
            read_timeout=r.read_timeout_sec,
            max_request_bytes=r.max_request_bytes,
            role=role,
        )
        host, port = cfg.parse_address(r.listen)
        asyncio.run(responder.serve_forever(host, port))
    except EnclaveLinkError as e:
        log_err(role, f"FATAL: {e}")
        return 1
    except OSError as e:
        log_err(role, f"FATAL: cannot listen: {e}")
        return 1
    except KeyboardInterrupt:
        log(role, "Shutting down.")
    return 0

# ============================================================================
# LOADER PROCESS (initiator)
# ============================================================================

def send(args):
    role = "LDR"
    reset_clock()

    try:
        c = cfg.load_config(args.config, {
            "initiator": {"address": args.ip_addr, "secret": args.secret, "app": args.app},
            "attestation": {
                "endpoint": args.endpoint,
                "image_id": args.image_id,
                "trusted_root": args.root_cert,
            },
            "channel": {"kdf": args.kdf},
        })
        i = c.initiator
        message = parse_message(args.message)
        secret = read_key_file(require(i.secret, "initiator.secret"))
        kwargs = {"timeout": i.timeout_sec, "max_response_bytes": i.max_response_bytes}

        if i.app:
            log(role, f"secret: {i.secret}, app: {i.app}")
            initiator = Initiator.from_keys(secret, read_key_file(i.app), c.channel.kdf, **kwargs)
        else:
            # No key file: verify the enclave before trusting its key
            att = c.attestation
            root_pem = read_root_pem(att.trusted_root)
            image_id = require(att.image_id, "attestation.image_id")
            document = fetch(att, role)
            initiator = Initiator.from_attestation(
                secret, document, root_pem, image_id, c.channel.kdf, **kwargs)
            log(role, "Attestation verified; channel key bound to attested key.")

        host, port = cfg.parse_address(i.address)
        resp = asyncio.run(initiator.deliver(host, port, message))
    except EnclaveLinkError as e:
        log_err(role, f"FATAL: {e}")
        return 1
    except (OSError, asyncio.TimeoutError) as e:
        log_err(role, f"FATAL: exchange failed: {e!r}")
        return 1

    log(role, f"Response: {resp.decode('utf-8', errors='replace')}")
    return 0

def compute(args):
    role = "LDR"
    reset_clock()
    try:
        c = cfg.load_config(args.config, {"initiator": {"address": args.ip_addr}})
        host, port = cfg.parse_address(c.initiator.address)
        resp = asyncio.run(request_compute(host, port, c.initiator.timeout_sec))
    except EnclaveLinkError as e:
        log_err(role, f"FATAL: {e}")
        return 1
    except (OSError, asyncio.TimeoutError) as e:
        log_err(role, f"FATAL: exchange failed: {e!r}")
        return 1

    log(role, f"Response: {resp.decode('utf-8', errors='replace')}")
    return 0

def build_parser():
    ap = argparse.ArgumentParser(
        prog="enclavelink",
        description="Attested key agreement and encrypted delivery for measured enclaves."
    )

    sub = ap.add_subparsers(dest="cmd", required=True)

    p_keygen = sub.add_parser("keygen", help="Write a raw X25519 key pair.")
    p_keygen.add_argument("--secret", required=True, help="Path of the private key file to write")
    p_keygen.add_argument("--public", required=True, help="Path of the public key file to write")
    p_keygen.set_defaults(func=keygen)

    p_verify = sub.add_parser("verify", help="Run the Verifier role.")
    p_verify.add_argument("-e", "--endpoint", help="Attestation endpoint http://<ip:port>/attestation/raw")
    p_verify.add_argument("-a", "--app", required=True, help="Path to output app public key file")
    p_verify.add_argument("-i", "--image-id", help="Expected image ID (hex-encoded)")
    p_verify.add_argument("-r", "--root-cert", help="Path to the pinned root certificate (PEM)")
    p_verify.add_argument("--config", help="Path to manifest YAML file")
    p_verify.set_defaults(func=verify)

    p_decode = sub.add_parser("decode", help="Print an attestation document without verifying it.")
    src = p_decode.add_mutually_exclusive_group(required=True)
    src.add_argument("-e", "--endpoint", help="Attestation endpoint to fetch from")
    src.add_argument("-f", "--file", help="Raw attestation document on disk")
    p_decode.add_argument("--config", help="Path to manifest YAML file")
    p_decode.set_defaults(func=decode)

    p_serve = sub.add_parser("serve", help="Run the App role (responder).")
    p_serve.add_argument("-i", "--ip-addr", help="ip address of the server <ip:port>")
    p_serve.add_argument("-s", "--secret", help="path to private key file")
    p_serve.add_argument("-l", "--loader", help="path to loader public key file")
    p_serve.add_argument("-r", "--requester", help="path to requester public key file")
    p_serve.add_argument("--kdf", choices=["raw", "hkdf-sha256"], help="Channel key derivation")
    p_serve.add_argument("--config", help="Path to manifest YAML file")
    p_serve.set_defaults(func=serve)

    p_send = sub.add_parser("send", help="Run the Loader role: deliver one encrypted payload.")
    p_send.add_argument("-i", "--ip-addr", help="ip address of the server <ip:port>")
    p_send.add_argument("-s", "--secret", help="path to private key file")
    p_send.add_argument("-a", "--app", help="path to app public key file written by `verify`")
    p_send.add_argument("-e", "--endpoint", help="Verify this attestation endpoint instead of --app")
    p_send.add_argument("--image-id", help="Expected image ID (hex-encoded)")
    p_send.add_argument("-r", "--root-cert", help="Path to the pinned root certificate (PEM)")
    p_send.add_argument("-m", "--message", default=DEFAULT_MESSAGE, help="Comma separated payload bytes")
    p_send.add_argument("--kdf", choices=["raw", "hkdf-sha256"], help="Channel key derivation")
    p_send.add_argument("--config", help="Path to manifest YAML file")
    p_send.set_defaults(func=send)

    p_compute = sub.add_parser("compute", help="Ask the App for a result over the last payload.")
    p_compute.add_argument("-i", "--ip-addr", help="ip address of the server <ip:port>")
    p_compute.add_argument("--config", help="Path to manifest YAML file")
    p_compute.set_defaults(func=compute)

    return ap

def main(argv=None):
    args = build_parser().parse_args(argv)
    sys.exit(args.func(args) or 0)

if __name__ == "__main__":
    main()
