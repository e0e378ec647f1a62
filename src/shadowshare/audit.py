# SPDX-FileCopyrightText: 2025 shadowshare contributors
# SPDX-License-Identifier: MIT

"""Offline audit trail with Ed25519 signatures and hash chaining.

Each event becomes one JSON file. Payloads carry share indices, counts and
peer identifiers only; share payloads and secrets are never written.
"""

from __future__ import annotations

import hashlib
import json
import os
import time
import uuid
from pathlib import Path
from typing import Any, Dict

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from shadowshare.policy import policy

GENESIS = "GENESIS"


def resolve_audit_dir() -> Path:
    """Return the directory where audit artefacts should be stored.

    ``SHADOWSHARE_AUDIT_DIR`` overrides the location; otherwise entries go to
    ``~/.shadowshare_audit``. The variable is read on every call so tests can
    redirect the trail with ``monkeypatch.setenv``.
    """

    override = os.environ.get("SHADOWSHARE_AUDIT_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".shadowshare_audit"


def _load_private_key(audit_dir: Path) -> Ed25519PrivateKey:
    key_path = audit_dir / "signing_key.pem"
    if key_path.exists():
        return serialization.load_pem_private_key(key_path.read_bytes(), password=None)
    private_key = Ed25519PrivateKey.generate()
    key_path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return private_key


def _load_prev_hash(audit_dir: Path) -> str:
    try:
        return (audit_dir / "chain.state").read_text().strip()
    except FileNotFoundError:
        return GENESIS


def record_event(event: str, *, details: Dict[str, Any] | None = None) -> Path | None:
    """Append ``event`` to the audit trail; returns ``None`` when auditing is off."""

    if not policy.audit_enabled:
        return None
    audit_dir = resolve_audit_dir()
    audit_dir.mkdir(parents=True, exist_ok=True)
    timestamp = int(time.time())
    payload = {
        "event": event,
        "details": details or {},
        "timestamp": timestamp,
        "prev_hash": _load_prev_hash(audit_dir),
    }
    message = json.dumps(payload, ensure_ascii=False, sort_keys=True).encode("utf-8")
    signature = _load_private_key(audit_dir).sign(message)
    chain_hash = hashlib.sha3_512(message + signature).hexdigest()
    entry = {
        "payload": payload,
        "signature": signature.hex(),
        "chain_hash": chain_hash,
    }
    file_path = audit_dir / f"audit_{timestamp}_{uuid.uuid4().hex}.json"
    file_path.write_text(json.dumps(entry, ensure_ascii=False, indent=2))
    (audit_dir / "chain.state").write_text(chain_hash)
    return file_path


def verify_log(path: os.PathLike[str] | str) -> bool:
    entry_path = Path(path)
    data = json.loads(entry_path.read_text())
    payload = json.dumps(data["payload"], ensure_ascii=False, sort_keys=True).encode("utf-8")
    signature = bytes.fromhex(data.get("signature") or "")
    public_key = _load_private_key(entry_path.parent).public_key()
    try:
        public_key.verify(signature, payload)
    except InvalidSignature:
        return False
    expected_chain_hash = hashlib.sha3_512(payload + signature).hexdigest()
    return expected_chain_hash == data.get("chain_hash")


__all__ = ["record_event", "resolve_audit_dir", "verify_log"]
