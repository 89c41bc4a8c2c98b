# securebackup/operations/backup_pipeline.py
# Hash, encrypt, sign and store a single file.

import logging
from datetime import datetime, timezone
from typing import NamedTuple

from securebackup.encryption.crypto_engine import CryptoEngine
from securebackup.encryption.metadata import METADATA_VERSION, BackupMetadata, utc_timestamp
from securebackup.errors import BackupError, StorageError, ValidationError
from securebackup.storage.content_store import ContentId, ContentStore

logger = logging.getLogger(__name__)


class BackupResult(NamedTuple):
    content_id: ContentId
    metadata: BackupMetadata


class BackupPipeline:
    def __init__(self, engine: CryptoEngine, store: ContentStore):
        self.engine = engine
        self.store = store

    def _now(self):
        # extracted for easier monkeypatching in tests
        return datetime.now(timezone.utc)

    def backup(self, plaintext: bytes, filename: str) -> BackupResult:
        """
        Encrypt plaintext under a fresh AES-256 key, sign the metadata record
        and store the ciphertext.

        The hash is taken over the plaintext before encryption, and the
        signature is produced last so that it covers the key and IV. Metadata
        is only returned once the ciphertext has been stored.

        Raises:
            ValidationError: plaintext is not bytes or filename is not a string
            CryptoError: encryption or signing failed
            StorageError: the store could not persist the ciphertext
        """
        if not isinstance(plaintext, (bytes, bytearray)):
            raise ValidationError("Plaintext must be bytes")
        if not isinstance(filename, str):
            raise ValidationError("Filename must be a string")
        plaintext = bytes(plaintext)

        file_hash = self.engine.digest(plaintext)
        key = self.engine.generate_key()
        iv, ciphertext = self.engine.encrypt(plaintext, key)

        unsigned = BackupMetadata(
            filename=filename,
            timestamp=utc_timestamp(self._now()),
            version=METADATA_VERSION,
            iv=iv.hex(),
            symmetric_key=key.hex(),
            file_hash=file_hash.hex(),
        )
        signature = self.engine.sign(unsigned.canonical_bytes())
        metadata = unsigned.with_signature(signature)

        try:
            content_id = self.store.put(ciphertext)
        except BackupError:
            raise
        except Exception as e:
            raise StorageError(f"Content store rejected the backup: {e}") from e

        logger.info(f"Backup stored: cid={content_id} fileHash={metadata.file_hash} "
                    f"bytes={len(ciphertext)}")
        return BackupResult(ContentId(content_id), metadata)
