# securebackup/encryption/metadata.py

"""The signed metadata record describing one backup.

The record carries the per-backup AES key and IV. Whoever holds a record can
decrypt the matching blob, so records must be kept as confidential as the
files they describe; the store itself only ever sees ciphertext.
"""

import json
import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Optional

from securebackup.errors import ValidationError

METADATA_VERSION = 1

# wire name -> attribute name, in the order the record is described
FIELDS = {
    'filename': 'filename',
    'timestamp': 'timestamp',
    'version': 'version',
    'iv': 'iv',
    'symmetricKey': 'symmetric_key',
    'fileHash': 'file_hash',
}
HEX_FIELDS = ('iv', 'symmetricKey', 'fileHash')

_HEX_RE = re.compile(r'(?:[0-9a-fA-F]{2})+')


def utc_timestamp(now: datetime = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def canonical_json(payload: Dict) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(',', ':'), ensure_ascii=True).encode('utf-8')


@dataclass(frozen=True)
class BackupMetadata:
    filename: str
    timestamp: str
    version: int
    iv: str
    symmetric_key: str
    file_hash: str
    signature: Optional[str] = None

    @classmethod
    def from_dict(cls, data) -> "BackupMetadata":
        """Build a record from its JSON form, enforcing structural validity.

        A missing or empty signature is allowed (the record is simply
        unsigned); every other field is required.
        """
        if not isinstance(data, dict):
            raise ValidationError("Metadata must be a JSON object")

        missing = [name for name in FIELDS if name not in data]
        if missing:
            raise ValidationError(f"Missing required metadata fields: {', '.join(missing)}")
        unknown = [name for name in data if name not in FIELDS and name != 'signature']
        if unknown:
            raise ValidationError(f"Unknown metadata fields: {', '.join(sorted(unknown))}")

        for name in ('filename', 'timestamp'):
            if not isinstance(data[name], str):
                raise ValidationError(f"Metadata field '{name}' must be a string")
        version = data['version']
        if isinstance(version, bool) or not isinstance(version, int):
            raise ValidationError("Metadata field 'version' must be an integer")

        for name in HEX_FIELDS:
            _require_hex(data[name], name)
        signature = data.get('signature')
        if signature:
            _require_hex(signature, 'signature')

        return cls(
            filename=data['filename'],
            timestamp=data['timestamp'],
            version=version,
            iv=data['iv'],
            symmetric_key=data['symmetricKey'],
            file_hash=data['fileHash'],
            signature=signature or None,
        )

    @classmethod
    def from_json(cls, text) -> "BackupMetadata":
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Metadata is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def unsigned_dict(self) -> Dict:
        return {wire: getattr(self, attr) for wire, attr in FIELDS.items()}

    def to_dict(self) -> Dict:
        data = self.unsigned_dict()
        if self.signature:
            data['signature'] = self.signature
        return data

    def canonical_bytes(self) -> bytes:
        """The exact bytes that are signed: every field except the signature."""
        return canonical_json(self.unsigned_dict())

    def with_signature(self, signature: bytes) -> "BackupMetadata":
        return replace(self, signature=signature.hex())

    @property
    def is_signed(self) -> bool:
        return bool(self.signature)

    def signature_bytes(self) -> bytes:
        return bytes.fromhex(self.signature) if self.signature else b''

    def decryption_params(self) -> tuple:
        """Return (key, iv, file_hash) as bytes, checking their lengths."""
        key = _fixed_length(self.symmetric_key, 'symmetricKey', 32)
        iv = _fixed_length(self.iv, 'iv', 16)
        file_hash = _fixed_length(self.file_hash, 'fileHash', 32)
        return key, iv, file_hash


def _require_hex(value, name):
    if not isinstance(value, str) or not _HEX_RE.fullmatch(value):
        raise ValidationError(f"Metadata field '{name}' must be a hex string")


def _fixed_length(value: str, name: str, length: int) -> bytes:
    raw = bytes.fromhex(value)
    if len(raw) != length:
        raise ValidationError(f"Metadata field '{name}' must encode {length} bytes")
    return raw
