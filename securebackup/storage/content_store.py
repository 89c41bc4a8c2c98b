# securebackup/storage/content_store.py

"""Content-addressed blob stores.

A store persists opaque byte blobs and hands back a ContentId derived from the
blob's bytes. The backup core only relies on put/get; the ids are passed
through untouched.

Ids are CIDv1 strings for a raw sha2-256 block: multibase prefix 'b' followed
by lowercase, unpadded base32 of <version><codec><hash fn><digest length><digest>.
"""

import base64
import hashlib
import logging
import threading
from abc import ABC, abstractmethod

from sqlalchemy.exc import IntegrityError as DuplicateKeyError, SQLAlchemyError

from securebackup.database.models import StoredBlob
from securebackup.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

CID_VERSION = 0x01
RAW_CODEC = 0x55
SHA2_256 = 0x12
SHA2_256_LENGTH = 0x20


class ContentId(str):
    """Opaque, immutable reference to a stored blob."""
    __slots__ = ()


def compute_content_id(data: bytes) -> ContentId:
    digest = hashlib.sha256(data).digest()
    raw = bytes([CID_VERSION, RAW_CODEC, SHA2_256, SHA2_256_LENGTH]) + digest
    encoded = base64.b32encode(raw).decode('ascii').lower().rstrip('=')
    return ContentId('b' + encoded)


class ContentStore(ABC):
    """put/get contract. Implementations must tolerate concurrent callers."""

    @abstractmethod
    def put(self, data: bytes) -> ContentId:
        """Persist data and return its id. Raises StorageError on failure."""

    @abstractmethod
    def get(self, content_id) -> bytes:
        """Return the bytes stored under content_id. Raises NotFoundError if unknown."""


class MemoryContentStore(ContentStore):
    def __init__(self):
        self._blobs = {}
        self._lock = threading.Lock()

    def put(self, data: bytes) -> ContentId:
        content_id = compute_content_id(data)
        with self._lock:
            self._blobs.setdefault(content_id, bytes(data))
        return content_id

    def get(self, content_id) -> bytes:
        with self._lock:
            data = self._blobs.get(str(content_id))
        if data is None:
            raise NotFoundError(f"Content not found: {content_id}")
        return data

    def __len__(self):
        with self._lock:
            return len(self._blobs)


class SQLContentStore(ContentStore):
    """Stores blobs in the StoredBlob table. Needs an active app context."""

    def __init__(self, db):
        self.db = db

    def put(self, data: bytes) -> ContentId:
        content_id = compute_content_id(data)
        try:
            if self.db.session.get(StoredBlob, str(content_id)) is None:
                self.db.session.add(StoredBlob(
                    content_id=str(content_id),
                    data=bytes(data),
                    size=len(data),
                ))
                self.db.session.commit()
        except DuplicateKeyError as e:
            # a concurrent put of the same bytes committed first
            self.db.session.rollback()
            if not self._exists(content_id):
                logger.error(f"Failed to store blob {content_id}: {e}")
                raise StorageError(f"Failed to store blob: {e}") from e
            logger.debug(f"Blob {content_id} was stored concurrently")
        except SQLAlchemyError as e:
            self.db.session.rollback()
            logger.error(f"Failed to store blob {content_id}: {e}")
            raise StorageError(f"Failed to store blob: {e}") from e
        return content_id

    def _exists(self, content_id) -> bool:
        try:
            return self.db.session.get(StoredBlob, str(content_id)) is not None
        except SQLAlchemyError as e:
            self.db.session.rollback()
            raise StorageError(f"Failed to read blob: {e}") from e

    def get(self, content_id) -> bytes:
        try:
            blob = self.db.session.get(StoredBlob, str(content_id))
        except SQLAlchemyError as e:
            self.db.session.rollback()
            raise StorageError(f"Failed to read blob: {e}") from e
        if blob is None:
            raise NotFoundError(f"Content not found: {content_id}")
        return bytes(blob.data)
