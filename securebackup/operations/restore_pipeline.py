# securebackup/operations/restore_pipeline.py
# Fetch, decrypt and integrity-check a backup.

import hmac
import logging

from securebackup.encryption.crypto_engine import CryptoEngine
from securebackup.encryption.metadata import BackupMetadata
from securebackup.errors import BackupError, IntegrityError, StorageError, ValidationError
from securebackup.storage.content_store import ContentStore

logger = logging.getLogger(__name__)

HASH_SIZE = 32


class RestorePipeline:
    """Turns a content id plus key, IV and expected hash back into the original file.

    The signature is never consulted here: the caller is expected to have
    verified the metadata record the key, IV and hash came from. Plaintext is
    only returned after its SHA-256 matches the expected hash.
    """

    def __init__(self, engine: CryptoEngine, store: ContentStore):
        self.engine = engine
        self.store = store

    def restore(self, content_id, key: bytes, iv: bytes, expected_hash: bytes) -> bytes:
        _check_hash_length(expected_hash)
        try:
            ciphertext = self.store.get(content_id)
        except BackupError:
            raise
        except Exception as e:
            raise StorageError(f"Content store failed to return {content_id}: {e}") from e
        plaintext = self._decrypt_and_check(ciphertext, key, iv, expected_hash)
        logger.info(f"Restored cid={content_id} ({len(plaintext)} bytes)")
        return plaintext

    def restore_from_metadata(self, content_id, metadata: BackupMetadata) -> bytes:
        key, iv, file_hash = metadata.decryption_params()
        return self.restore(content_id, key, iv, file_hash)

    def decrypt_only(self, ciphertext: bytes, key: bytes, iv: bytes,
                     expected_hash: bytes = None) -> bytes:
        """Decrypt caller-supplied ciphertext, skipping the store lookup.

        The hash check only runs when expected_hash is given.
        """
        if expected_hash is not None:
            _check_hash_length(expected_hash)
        return self._decrypt_and_check(ciphertext, key, iv, expected_hash)

    def _decrypt_and_check(self, ciphertext, key, iv, expected_hash):
        plaintext = self.engine.decrypt(ciphertext, key, iv)
        if expected_hash is None:
            return plaintext
        actual_hash = self.engine.digest(plaintext)
        if not hmac.compare_digest(actual_hash, bytes(expected_hash)):
            logger.warning("Integrity check failed: decrypted content hash mismatch")
            raise IntegrityError("File integrity check failed.")
        return plaintext


def _check_hash_length(expected_hash):
    if not isinstance(expected_hash, (bytes, bytearray)) or len(expected_hash) != HASH_SIZE:
        raise ValidationError(f"Expected hash must be {HASH_SIZE} bytes")
