# securebackup/security/input_validator.py

import re
import json
import unicodedata

from securebackup.errors import ValidationError
from securebackup.storage.content_store import ContentId

# Parsing and sanitization of request parameters before they reach the pipelines.

class InputValidator:
    def __init__(self, max_content_id_length=128):
        self.max_content_id_length = max_content_id_length

        self.patterns = {
            'hex': re.compile(r'(?:[0-9a-fA-F]{2})+'),
            'content_id': re.compile(r'[a-z2-7]+'),
            'path_separator': re.compile(r'[\\/]'),
        }

    def parse_hex(self, value, field, length=None):
        """Decode a hex request parameter, optionally requiring an exact byte length."""
        if value is None or value == '':
            raise ValidationError(f"Missing required parameter: {field}")
        if not isinstance(value, str):
            raise ValidationError(f"Parameter '{field}' must be a hex string")
        value = value.strip()
        if not self.patterns['hex'].fullmatch(value):
            raise ValidationError(f"Parameter '{field}' is not valid hex")
        raw = bytes.fromhex(value)
        if length is not None and len(raw) != length:
            raise ValidationError(f"Parameter '{field}' must encode {length} bytes, got {len(raw)}")
        return raw

    def validate_content_id(self, value):
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("Missing required parameter: cid")
        value = value.strip()
        if value.startswith('B') and value.isupper():
            # 'B' is the multibase prefix for uppercase base32; stored ids are lowercase
            value = value.lower()
        if len(value) > self.max_content_id_length or not self.patterns['content_id'].fullmatch(value):
            raise ValidationError("Parameter 'cid' is not a valid content id")
        return ContentId(value)

    def sanitize_filename(self, name, max_length=255):
        """Reduce a client-supplied filename to a bare, printable name."""
        if not isinstance(name, str):
            return 'upload.bin'
        name = self.patterns['path_separator'].split(name)[-1]
        name = ''.join(ch for ch in name if unicodedata.category(ch)[0] != 'C')
        name = name.strip().lstrip('.')
        if len(name) > max_length:
            name = name[:max_length]
        return name or 'upload.bin'

    def parse_metadata_json(self, text):
        if text is None or text == '':
            raise ValidationError("Missing metadata parameter.")
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Metadata is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValidationError("Metadata must be a JSON object")
        return data
