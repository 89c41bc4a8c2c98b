# securebackup/routes.py

# HTTP surface for backup, restore, metadata verification and raw decryption.
# Each view only parses the request and hands over to the pipelines in securebackup.operations.

import io
import time
from flask import Blueprint, current_app, jsonify, request, send_file

from securebackup import limiter
from securebackup.errors import (
    BackupError,
    CryptoError,
    IntegrityError,
    NotFoundError,
    StorageError,
    ValidationError,
)

bp = Blueprint('backup', __name__)

STATUS_CODES = {
    ValidationError: 400,
    CryptoError: 400,
    IntegrityError: 400,
    NotFoundError: 404,
    StorageError: 503,
}

FAILURE_EVENTS = {
    'backup.backup': 'backup_failed',
    'backup.restore': 'restore_failed',
    'backup.decrypt_file': 'decrypt_failed',
    'backup.verify_metadata': 'metadata_verification_failed',
}


def _services():
    return current_app.extensions['securebackup']


def _status_for(error):
    for cls in type(error).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


def _timestamped_name(prefix):
    return f"{prefix}_{int(time.time() * 1000)}"


def _key_param(values):
    # 'aesKey' is the legacy name for symmetricKey
    return values.get('symmetricKey') or values.get('aesKey')


@bp.errorhandler(BackupError)
def handle_backup_error(error):
    status = _status_for(error)
    kind = type(error).__name__
    _services().audit_logger.log_event(
        FAILURE_EVENTS.get(request.endpoint, 'request_failed'),
        {'kind': kind, 'error': str(error)},
        client_ip=request.remote_addr,
    )
    if status >= 500:
        current_app.logger.error(f"{request.endpoint} failed: {kind}: {error}")
    else:
        current_app.logger.warning(f"{request.endpoint} rejected: {kind}: {error}")
    message = 'File integrity check failed.' if isinstance(error, IntegrityError) else str(error)
    return jsonify({'error': message, 'kind': kind}), status


@bp.route('/backup', methods=['POST'])
@limiter.limit(lambda: current_app.config['BACKUP_RATE_LIMIT'])
def backup():
    services = _services()
    upload = request.files.get('file')
    if upload is None:
        raise ValidationError("Missing file upload field: file")

    filename = services.validator.sanitize_filename(upload.filename)
    content_id, metadata = services.backup_pipeline.backup(upload.read(), filename)

    services.audit_logger.log_event('backup_created', {
        'cid': content_id,
        'filename': metadata.filename,
        'fileHash': metadata.file_hash,
    }, client_ip=request.remote_addr)
    return jsonify({
        'cid': content_id,
        'metadata': metadata.to_dict(),
        'message': 'Backup successful: file encrypted, signed, and stored.',
    })


@bp.route('/restore', methods=['GET'])
def restore():
    services = _services()
    validator = services.validator
    args = request.args
    missing = [name for name, value in (
        ('cid', args.get('cid')),
        ('symmetricKey', _key_param(args)),
        ('iv', args.get('iv')),
        ('expectedHash', args.get('expectedHash')),
    ) if not value]
    if missing:
        raise ValidationError(f"Missing required query parameters: {', '.join(missing)}")

    content_id = validator.validate_content_id(args.get('cid'))
    key = validator.parse_hex(_key_param(args), 'symmetricKey', length=32)
    iv = validator.parse_hex(args.get('iv'), 'iv', length=16)
    expected_hash = validator.parse_hex(args.get('expectedHash'), 'expectedHash', length=32)

    plaintext = services.restore_pipeline.restore(content_id, key, iv, expected_hash)

    services.audit_logger.log_event('restore_completed', {
        'cid': content_id,
        'bytes': len(plaintext),
    }, client_ip=request.remote_addr)
    return send_file(
        io.BytesIO(plaintext),
        mimetype='application/octet-stream',
        as_attachment=True,
        download_name=_timestamped_name('restored'),
    )


@bp.route('/verifyMetadata', methods=['GET', 'POST'])
def verify_metadata():
    services = _services()
    if request.method == 'GET':
        data = services.validator.parse_metadata_json(request.args.get('metadata'))
    else:
        data = request.get_json(silent=True)
        if data is None:
            data = services.validator.parse_metadata_json(request.form.get('metadata'))
        elif isinstance(data, dict) and 'metadata' in data:
            data = data['metadata']
            if isinstance(data, str):
                data = services.validator.parse_metadata_json(data)

    valid = services.verifier.verify_dict(data)

    services.audit_logger.log_event('metadata_verified', {
        'fileHash': data.get('fileHash'),
        'valid': valid,
    }, client_ip=request.remote_addr)
    return jsonify({'valid': valid})


@bp.route('/decryptFile', methods=['POST'])
def decrypt_file():
    services = _services()
    validator = services.validator
    upload = request.files.get('file')
    if upload is None:
        raise ValidationError("Missing file upload field: file")
    form = request.form
    if not _key_param(form) or not form.get('iv'):
        raise ValidationError("Missing symmetricKey or iv in request body.")

    key = validator.parse_hex(_key_param(form), 'symmetricKey', length=32)
    iv = validator.parse_hex(form.get('iv'), 'iv', length=16)
    expected_hash = None
    if form.get('expectedHash'):
        expected_hash = validator.parse_hex(form.get('expectedHash'), 'expectedHash', length=32)

    plaintext = services.restore_pipeline.decrypt_only(upload.read(), key, iv, expected_hash)

    services.audit_logger.log_event('decrypt_completed', {
        'bytes': len(plaintext),
        'hashChecked': expected_hash is not None,
    }, client_ip=request.remote_addr)
    return send_file(
        io.BytesIO(plaintext),
        mimetype='application/octet-stream',
        as_attachment=True,
        download_name=_timestamped_name('decrypted'),
    )
