# securebackup/services.py

from securebackup.audit.audit_logger import AuditLogger
from securebackup.audit.metadata_verifier import MetadataVerifier
from securebackup.encryption.crypto_engine import CryptoEngine
from securebackup.operations.backup_pipeline import BackupPipeline
from securebackup.operations.restore_pipeline import RestorePipeline
from securebackup.security.input_validator import InputValidator
from securebackup.storage.content_store import ContentStore

# One engine and one store shared by every pipeline of an application instance.

class BackupServices:
    def __init__(self, engine: CryptoEngine, store: ContentStore, audit_logger: AuditLogger):
        self.engine = engine
        self.store = store
        self.audit_logger = audit_logger
        self.backup_pipeline = BackupPipeline(engine, store)
        self.restore_pipeline = RestorePipeline(engine, store)
        self.verifier = MetadataVerifier(engine)
        self.validator = InputValidator()
