# securebackup/audit/audit_logger.py

import os
import json
import hashlib
import base64
import logging
import threading
from datetime import datetime, timezone
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives import serialization

# Append-only audit trail with hash chaining and Ed25519 signatures.
# Key material never reaches the log: secret fields are redacted before writing.

logger = logging.getLogger(__name__)

REDACTED_FIELDS = {'symmetricKey', 'symmetric_key', 'aesKey', 'key'}


def _redact(value):
    if isinstance(value, dict):
        return {k: ('[REDACTED]' if k in REDACTED_FIELDS else _redact(v)) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact(v) for v in value]
    return value


def load_or_create_signing_key(path):
    """Load the Ed25519 audit key from path, generating and saving it on first use."""
    if os.path.exists(path):
        with open(path, 'rb') as f:
            key = serialization.load_pem_private_key(f.read(), password=None)
        if not isinstance(key, Ed25519PrivateKey):
            raise ValueError(f"Audit signing key {path} is not an Ed25519 private key")
        return key

    key = Ed25519PrivateKey.generate()
    key_dir = os.path.dirname(path)
    if key_dir:
        os.makedirs(key_dir, exist_ok=True)
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    with open(path, 'wb') as f:
        f.write(pem)
    os.chmod(path, 0o600)
    logger.info(f"Generated audit signing key at {path}")
    return key


class AuditLogger:
    def __init__(self, log_dir='logs', signing_key=None, signing_key_path=None):
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, 'audit.log')
        self.previous_hash = None
        self._lock = threading.Lock()

        os.makedirs(log_dir, exist_ok=True)

        if signing_key is None and signing_key_path:
            signing_key = load_or_create_signing_key(signing_key_path)
        self.signing_key = signing_key or Ed25519PrivateKey.generate()
        self._load_previous_hash()

    def _load_previous_hash(self):
        if os.path.exists(self.log_file):
            with open(self.log_file, 'r') as f:
                lines = [line for line in f if line.strip()]
            if lines:
                try:
                    last_entry = json.loads(lines[-1])
                    self.previous_hash = last_entry.get('hash')
                except ValueError:
                    logger.warning(f"Audit log {self.log_file} ends with an unreadable entry")
                    self.previous_hash = None

    def log_event(self, event_type, data, client_ip=None):
        with self._lock:
            try:
                log_entry = {
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "event_type": event_type,
                    "data": _redact(data),
                    "client_ip": client_ip,
                    "previous_hash": self.previous_hash,
                }
                entry_json = json.dumps(log_entry, sort_keys=True)
                entry_hash = hashlib.sha256(entry_json.encode()).hexdigest()
                log_entry['hash'] = entry_hash

                signature = self.signing_key.sign(entry_json.encode())
                log_entry['signature'] = base64.b64encode(signature).decode()

                with open(self.log_file, 'a') as f:
                    f.write(json.dumps(log_entry) + "\n")

                self.previous_hash = entry_hash
            except Exception as e:
                # Auditing must not abort the backup or restore being audited
                logger.error(f"Audit log error: {e}")

    def verify_log_integrity(self):
        if not os.path.exists(self.log_file):
            return True
        public_key = self.signing_key.public_key()
        previous_hash = None
        try:
            with open(self.log_file, 'r') as f:
                for line in f:
                    if not line.strip():
                        continue
                    log_entry = json.loads(line)
                    if log_entry.get('previous_hash') != previous_hash:
                        return False
                    signature = base64.b64decode(log_entry['signature'])
                    entry_copy = dict(log_entry)
                    entry_copy.pop('signature')
                    entry_hash = entry_copy.pop('hash')
                    entry_json = json.dumps(entry_copy, sort_keys=True).encode()
                    if hashlib.sha256(entry_json).hexdigest() != entry_hash:
                        return False
                    public_key.verify(signature, entry_json)
                    previous_hash = entry_hash
            return True
        except Exception:
            return False
