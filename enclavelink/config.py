"""
config.py - Run manifest for the EnclaveLink roles.

The manifest is an optional YAML file; every key has a default and command
line flags win over the file. Validation collects every problem before
failing so a broken manifest is fixed in one pass.

    responder:
      listen: 0.0.0.0:4000
      secret: /app/keys/id.sec
      loader: /app/loader.pub
      requester: /app/requester.pub
      read_timeout_sec: 10
      max_request_bytes: 65536
    initiator:
      address: 127.0.0.1:4000
      secret: keys/loader.sec
      app: keys/app.pub
      timeout_sec: 10
      max_response_bytes: 65536
    attestation:
      endpoint: http://127.0.0.1:8080/attestation/raw
      trusted_root: certs/root.pem
      image_id: <64 hex chars>
      timeout_sec: 10
      max_attempts: 3
      initial_delay_sec: 0.25
      max_delay_sec: 3
      jitter: true
    channel:
      kdf: raw            # or hkdf-sha256
"""
import copy
import re
from dataclasses import dataclass
from typing import Optional

import yaml

from enclavelink_work.lib.derive_channel_key import KDF_MODES, KDF_RAW
from enclavelink_work.lib.errors import ConfigError

DEFAULTS = {
    "responder": {
        "listen": "0.0.0.0:4000",
        "secret": None,
        "loader": None,
        "requester": None,
        "read_timeout_sec": 10.0,
        "max_request_bytes": 65536,
    },
    "initiator": {
        "address": "127.0.0.1:4000",
        "secret": None,
        "app": None,
        "timeout_sec": 10.0,
        "max_response_bytes": 65536,
    },
    "attestation": {
        "endpoint": None,
        "trusted_root": None,
        "image_id": None,
        "timeout_sec": 10.0,
        "max_attempts": 3,
        "initial_delay_sec": 0.25,
        "max_delay_sec": 3.0,
        "jitter": True,
    },
    "channel": {
        "kdf": KDF_RAW,
    },
}

_HEX64 = re.compile(r"^[0-9a-fA-F]{64}$")


@dataclass
class ResponderConfig:
    listen: str
    secret: Optional[str]
    loader: Optional[str]
    requester: Optional[str]
    read_timeout_sec: float
    max_request_bytes: int


@dataclass
class InitiatorConfig:
    address: str
    secret: Optional[str]
    app: Optional[str]
    timeout_sec: float
    max_response_bytes: int


@dataclass
class AttestationConfig:
    endpoint: Optional[str]
    trusted_root: Optional[str]
    image_id: Optional[str]
    timeout_sec: float
    max_attempts: int
    initial_delay_sec: float
    max_delay_sec: float
    jitter: bool


@dataclass
class ChannelConfig:
    kdf: str


@dataclass
class Config:
    responder: ResponderConfig
    initiator: InitiatorConfig
    attestation: AttestationConfig
    channel: ChannelConfig


def read_yaml(path):
    """Read manifest file (YAML format)."""
    with open(path, "r") as f:
        return yaml.safe_load(f)


def parse_address(addr):
    """Split `host:port` (IPv6 hosts in brackets) into (host, port)."""
    if not isinstance(addr, str) or ":" not in addr:
        raise ConfigError(f"address:{addr!r}:not_host_port")
    host, _, port = addr.rpartition(":")
    host = host.strip("[]")
    if not port.isdigit() or not 0 <= int(port) <= 65535:
        raise ConfigError(f"address:{addr!r}:bad_port")
    return host, int(port)


def _is_number(v):
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def validate(m):
    errors = [f"{section}:unknown" for section in m if section not in DEFAULTS]
    for section, defaults in DEFAULTS.items():
        if not isinstance(m.get(section), dict):
            errors.append(f"{section}:not_object")
            continue
        for key in m[section]:
            if key not in defaults:
                errors.append(f"{section}.{key}:unknown")
    if errors:
        return errors

    for section, key in [("responder", "read_timeout_sec"), ("initiator", "timeout_sec"),
                         ("attestation", "timeout_sec"), ("attestation", "initial_delay_sec"),
                         ("attestation", "max_delay_sec")]:
        v = m[section][key]
        if not _is_number(v) or v <= 0:
            errors.append(f"{section}.{key}:not_positive")

    for section, key in [("responder", "max_request_bytes"), ("initiator", "max_response_bytes"),
                         ("attestation", "max_attempts")]:
        v = m[section][key]
        if not isinstance(v, int) or isinstance(v, bool) or v <= 0:
            errors.append(f"{section}.{key}:not_positive")

    att = m["attestation"]
    if _is_number(att["initial_delay_sec"]) and _is_number(att["max_delay_sec"]):
        if att["max_delay_sec"] < att["initial_delay_sec"]:
            errors.append("attestation.max_delay_sec:below_initial_delay")
    if att["image_id"] is not None and not _HEX64.fullmatch(str(att["image_id"])):
        errors.append("attestation.image_id:not_sha256_hex")

    if m["channel"]["kdf"] not in KDF_MODES:
        errors.append("channel.kdf:value")

    for section, key in [("responder", "listen"), ("initiator", "address")]:
        try:
            parse_address(m[section][key])
        except ConfigError:
            errors.append(f"{section}.{key}:not_host_port")
    return errors


def merge(base, override):
    out = copy.deepcopy(base)
    for section, values in (override or {}).items():
        if not isinstance(values, dict):
            out[section] = values
            continue
        target = out.setdefault(section, {})
        if not isinstance(target, dict):
            continue
        for key, value in values.items():
            if value is not None:
                target[key] = value
    return out


def load_config(path=None, overrides=None):
    """Defaults, then the manifest at `path`, then `overrides` (None values skipped)."""
    m = copy.deepcopy(DEFAULTS)
    if path:
        try:
            data = read_yaml(path)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"manifest:{path}:{e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("manifest:not_object")
        m = merge(m, data)
    m = merge(m, overrides)

    errors = validate(m)
    if errors:
        raise ConfigError(errors)

    return Config(
        responder=ResponderConfig(**m["responder"]),
        initiator=InitiatorConfig(**m["initiator"]),
        attestation=AttestationConfig(**m["attestation"]),
        channel=ChannelConfig(**m["channel"]),
    )
