# securebackup/audit/metadata_verifier.py

from securebackup.encryption.crypto_engine import CryptoEngine
from securebackup.encryption.metadata import BackupMetadata
from securebackup.errors import ValidationError

# Offline authenticity check for backup metadata records. Needs only the
# public key; never touches the content store.

class MetadataVerifier:
    def __init__(self, engine: CryptoEngine):
        self.engine = engine

    def verify(self, metadata: BackupMetadata) -> bool:
        """Return True if the record's signature covers its current field values.

        Unsigned or tampered records return False. A record that is not a
        BackupMetadata raises ValidationError.
        """
        if not isinstance(metadata, BackupMetadata):
            raise ValidationError("Expected a BackupMetadata record")
        if not metadata.is_signed:
            return False
        try:
            signature = metadata.signature_bytes()
        except ValueError as e:
            raise ValidationError(f"Metadata signature is not valid hex: {e}") from e
        return self.engine.verify(metadata.canonical_bytes(), signature)

    def verify_dict(self, data) -> bool:
        return self.verify(BackupMetadata.from_dict(data))

    def verify_json(self, text) -> bool:
        return self.verify(BackupMetadata.from_json(text))
