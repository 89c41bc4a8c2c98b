# securebackup/errors.py

"""Error taxonomy for the backup/restore pipeline.

Exception hierarchy:
- BackupError: Base class for every failure raised by the core
  - CryptoError: A cryptographic primitive failed (bad key/IV length, bad padding)
    - InvalidKeyOrIvError: Key or IV has the wrong length
    - InvalidPaddingError: Ciphertext length or PKCS#7 padding is malformed
  - StorageError: The content store failed; the whole backup may be retried
  - NotFoundError: The requested content id is unknown to the store
  - IntegrityError: Decrypted content does not match the expected hash
  - ValidationError: Malformed metadata record or boundary input

None of these are retried inside the core; retry policy belongs to the caller.
"""


class BackupError(Exception):
    """Base exception for backup/restore failures."""
    pass


class CryptoError(BackupError):
    """Raised when encryption, decryption or signing cannot complete."""
    pass


class InvalidKeyOrIvError(CryptoError):
    """Raised when a symmetric key or IV has the wrong length."""
    pass


class InvalidPaddingError(CryptoError):
    """Raised when ciphertext length or padding is malformed after decryption."""
    pass


class StorageError(BackupError):
    """Raised when the content store cannot persist or read a blob."""
    pass


class NotFoundError(BackupError):
    """Raised when a content id was never stored."""
    pass


class IntegrityError(BackupError):
    """Raised when the decrypted content hash does not match the expected hash."""
    pass


class ValidationError(BackupError):
    """Raised when a metadata record or request parameter is malformed."""
    pass
