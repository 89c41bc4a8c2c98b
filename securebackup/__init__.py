# securebackup/__init__.py

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.middleware.proxy_fix import ProxyFix
import logging
import os


db = SQLAlchemy()  # Content store ORM
migrate = Migrate()  # DB migrations
limiter = Limiter(key_func=get_remote_address, default_limits=["10000/hour"])


def _default_config():
    return {
        'SIGNING_PRIVATE_KEY_PATH': os.environ.get('SIGNING_PRIVATE_KEY_PATH', os.path.join('keys', 'private.pem')),
        'SIGNING_PUBLIC_KEY_PATH': os.environ.get('SIGNING_PUBLIC_KEY_PATH', os.path.join('keys', 'public.pem')),
        'SIGNING_KEY_PASSWORD': os.environ.get('SIGNING_KEY_PASSWORD'),
        'CONTENT_STORE': os.environ.get('CONTENT_STORE', 'sql'),
        'SQLALCHEMY_DATABASE_URI': os.environ.get('DATABASE_URL', 'sqlite:///securebackup.sqlite'),
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MAX_CONTENT_LENGTH': int(os.environ.get('MAX_UPLOAD_MB', '100')) * 1024 * 1024,
        'AUDIT_LOG_DIR': os.environ.get('AUDIT_LOG_DIR', 'logs'),
        # defaults to <AUDIT_LOG_DIR>/audit_signing_key.pem
        'AUDIT_SIGNING_KEY_PATH': os.environ.get('AUDIT_SIGNING_KEY_PATH'),
        'BACKUP_RATE_LIMIT': os.environ.get('BACKUP_RATE_LIMIT', '60/minute'),
        'RATELIMIT_STORAGE_URI': os.environ.get('REDIS_URL', 'memory://'),
        'MIN_FREE_DISK_GB': float(os.environ.get('MIN_FREE_DISK_GB', '1')),
        'LOG_LEVEL': os.environ.get('LOG_LEVEL', 'INFO'),
    }


def create_app(test_config=None, engine=None, store=None):
    """Application factory.

    engine and store may be injected (tests use ephemeral RSA keys and the
    in-memory store); otherwise the signing keys are loaded from the configured
    PEM files and the store is chosen by CONTENT_STORE.
    """
    app = Flask(__name__)
    app.config.from_mapping(_default_config())
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Fix proxy headers for HTTPS
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # Ensure model modules are imported so SQLAlchemy metadata is populated
    from securebackup.database import models  # noqa: F401
    from securebackup.audit.audit_logger import AuditLogger
    from securebackup.encryption.crypto_engine import CryptoEngine
    from securebackup.services import BackupServices
    from securebackup.storage.content_store import MemoryContentStore, SQLContentStore

    if engine is None:
        # Keys are loaded once per process; rotating them means restarting the service
        engine = CryptoEngine.from_files(
            app.config['SIGNING_PRIVATE_KEY_PATH'],
            app.config['SIGNING_PUBLIC_KEY_PATH'],
            password=app.config['SIGNING_KEY_PASSWORD'],
        )

    if store is None:
        backend = str(app.config['CONTENT_STORE']).lower()
        if backend == 'memory':
            store = MemoryContentStore()
        elif backend == 'sql':
            with app.app_context():
                db.create_all()
            store = SQLContentStore(db)
        else:
            raise ValueError(f"Unknown CONTENT_STORE: {app.config['CONTENT_STORE']!r}")

    audit_dir = app.config['AUDIT_LOG_DIR']
    audit_key_path = app.config['AUDIT_SIGNING_KEY_PATH'] or os.path.join(audit_dir, 'audit_signing_key.pem')
    app.extensions['securebackup'] = BackupServices(
        engine=engine,
        store=store,
        audit_logger=AuditLogger(log_dir=audit_dir, signing_key_path=audit_key_path),
    )

    from securebackup.routes import bp
    from securebackup.operations.health_monitor import health_bp
    app.register_blueprint(bp)
    app.register_blueprint(health_bp)

    app.logger.info(f"SecureBackup ready (store={type(store).__name__}, can_sign={engine.can_sign})")
    return app
