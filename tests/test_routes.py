import io
import json
import pytest
from securebackup import create_app
from securebackup.encryption.crypto_engine import CryptoEngine
from securebackup.errors import StorageError
from securebackup.storage.content_store import ContentStore, MemoryContentStore, compute_content_id

HELLO_SHA256 = '2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'


class OfflineStore(ContentStore):
    def put(self, data):
        raise StorageError("store offline")

    def get(self, content_id):
        raise StorageError("store offline")


@pytest.fixture(scope='module')
def engine():
    return CryptoEngine.generate()


def _make_app(engine, tmp_path, store):
    return create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'AUDIT_LOG_DIR': str(tmp_path / 'logs'),
        'RATELIMIT_ENABLED': False,
        'MIN_FREE_DISK_GB': 0,
    }, engine=engine, store=store)


@pytest.fixture
def app(engine, tmp_path):
    return _make_app(engine, tmp_path, MemoryContentStore())


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


def _backup(client, data=b'hello', filename='hello.txt'):
    resp = client.post('/backup', data={'file': (io.BytesIO(data), filename)},
                       content_type='multipart/form-data')
    assert resp.status_code == 200
    return resp.get_json()


def test_backup_returns_cid_and_signed_metadata(client):
    body = _backup(client)
    metadata = body['metadata']
    assert body['cid'].startswith('b')
    assert metadata['fileHash'] == HELLO_SHA256
    assert metadata['filename'] == 'hello.txt'
    assert metadata['version'] == 1
    assert set(metadata) == {'filename', 'timestamp', 'version', 'iv', 'symmetricKey',
                             'fileHash', 'signature'}


def test_backup_sanitizes_filename(client):
    body = _backup(client, filename='../../etc/passwd')
    assert body['metadata']['filename'] == 'passwd'


def test_backup_requires_file(client):
    resp = client.post('/backup', data={}, content_type='multipart/form-data')
    assert resp.status_code == 400
    assert resp.get_json()['kind'] == 'ValidationError'


def test_restore_roundtrip(client):
    body = _backup(client)
    m = body['metadata']
    resp = client.get('/restore', query_string={
        'cid': body['cid'], 'symmetricKey': m['symmetricKey'],
        'iv': m['iv'], 'expectedHash': m['fileHash'],
    })
    assert resp.status_code == 200
    assert resp.data == b'hello'
    assert 'attachment; filename=restored_' in resp.headers['Content-Disposition']


def test_restore_accepts_legacy_key_name(client):
    body = _backup(client)
    m = body['metadata']
    resp = client.get('/restore', query_string={
        'cid': body['cid'], 'aesKey': m['symmetricKey'],
        'iv': m['iv'], 'expectedHash': m['fileHash'],
    })
    assert resp.status_code == 200
    assert resp.data == b'hello'


def test_restore_missing_params(client):
    resp = client.get('/restore', query_string={'cid': 'babc'})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body['kind'] == 'ValidationError'
    assert 'iv' in body['error']


def test_restore_unknown_cid(client):
    resp = client.get('/restore', query_string={
        'cid': compute_content_id(b'nothing'), 'symmetricKey': '00' * 32,
        'iv': '00' * 16, 'expectedHash': '00' * 32,
    })
    assert resp.status_code == 404
    assert resp.get_json()['kind'] == 'NotFoundError'


def test_restore_integrity_failure_withholds_file(client):
    body = _backup(client)
    m = body['metadata']
    resp = client.get('/restore', query_string={
        'cid': body['cid'], 'symmetricKey': m['symmetricKey'],
        'iv': m['iv'], 'expectedHash': '00' * 32,
    })
    assert resp.status_code == 400
    assert resp.get_json() == {'error': 'File integrity check failed.', 'kind': 'IntegrityError'}
    assert b'hello' not in resp.data


def test_restore_wrong_iv(client):
    body = _backup(client)
    m = body['metadata']
    wrong_iv = ('ff' if m['iv'][:2] != 'ff' else '00') + m['iv'][2:]
    resp = client.get('/restore', query_string={
        'cid': body['cid'], 'symmetricKey': m['symmetricKey'],
        'iv': wrong_iv, 'expectedHash': m['fileHash'],
    })
    assert resp.status_code == 400
    assert resp.get_json()['kind'] in ('IntegrityError', 'InvalidPaddingError', 'CryptoError')


def test_restore_rejects_non_hex_key(client):
    body = _backup(client)
    m = body['metadata']
    resp = client.get('/restore', query_string={
        'cid': body['cid'], 'symmetricKey': 'zz' * 32,
        'iv': m['iv'], 'expectedHash': m['fileHash'],
    })
    assert resp.status_code == 400
    assert resp.get_json()['kind'] == 'ValidationError'


def test_verify_metadata_get_and_post(client):
    metadata = _backup(client)['metadata']
    resp = client.get('/verifyMetadata', query_string={'metadata': json.dumps(metadata)})
    assert resp.status_code == 200
    assert resp.get_json() == {'valid': True}

    resp = client.post('/verifyMetadata', json=metadata)
    assert resp.get_json() == {'valid': True}

    resp = client.post('/verifyMetadata', json={'metadata': metadata})
    assert resp.get_json() == {'valid': True}


def test_verify_metadata_tampered_signature(client):
    metadata = _backup(client)['metadata']
    sig = metadata['signature']
    metadata['signature'] = ('1' if sig[0] != '1' else '2') + sig[1:]
    resp = client.get('/verifyMetadata', query_string={'metadata': json.dumps(metadata)})
    assert resp.status_code == 200
    assert resp.get_json() == {'valid': False}


def test_verify_metadata_malformed(client):
    resp = client.get('/verifyMetadata')
    assert resp.status_code == 400
    resp = client.get('/verifyMetadata', query_string={'metadata': '{"filename": "x"}'})
    assert resp.status_code == 400
    assert resp.get_json()['kind'] == 'ValidationError'


def test_decrypt_file(client, app):
    body = _backup(client, data=b'raw ciphertext test')
    m = body['metadata']
    ciphertext = app.extensions['securebackup'].store.get(body['cid'])

    resp = client.post('/decryptFile', data={
        'file': (io.BytesIO(ciphertext), 'blob.enc'),
        'symmetricKey': m['symmetricKey'], 'iv': m['iv'],
    }, content_type='multipart/form-data')
    assert resp.status_code == 200
    assert resp.data == b'raw ciphertext test'
    assert 'filename=decrypted_' in resp.headers['Content-Disposition']

    resp = client.post('/decryptFile', data={
        'file': (io.BytesIO(ciphertext), 'blob.enc'),
        'symmetricKey': m['symmetricKey'], 'iv': m['iv'], 'expectedHash': '11' * 32,
    }, content_type='multipart/form-data')
    assert resp.status_code == 400
    assert resp.get_json()['kind'] == 'IntegrityError'


def test_decrypt_file_requires_key_and_iv(client):
    resp = client.post('/decryptFile', data={'file': (io.BytesIO(b'x' * 16), 'blob.enc')},
                       content_type='multipart/form-data')
    assert resp.status_code == 400
    assert resp.get_json()['kind'] == 'ValidationError'


def test_storage_failure_maps_to_503(engine, tmp_path):
    app = _make_app(engine, tmp_path, OfflineStore())
    with app.test_client() as client:
        resp = client.post('/backup', data={'file': (io.BytesIO(b'hello'), 'a.txt')},
                           content_type='multipart/form-data')
    assert resp.status_code == 503
    body = resp.get_json()
    assert body['kind'] == 'StorageError'
    assert 'metadata' not in body


def test_audit_log_records_events_without_keys(client, app):
    body = _backup(client)
    m = body['metadata']
    client.get('/restore', query_string={
        'cid': body['cid'], 'symmetricKey': m['symmetricKey'],
        'iv': m['iv'], 'expectedHash': '00' * 32,
    })
    audit_logger = app.extensions['securebackup'].audit_logger
    with open(audit_logger.log_file) as f:
        contents = f.read()
    events = [json.loads(line)['event_type'] for line in contents.splitlines()]
    assert 'backup_created' in events
    assert 'restore_failed' in events
    assert m['symmetricKey'] not in contents
    assert audit_logger.verify_log_integrity() is True


def test_health_endpoints(client):
    resp = client.get('/health')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['overall_ok'] is True
    assert body['store']['ok'] is True

    resp = client.get('/ready')
    assert resp.status_code == 200


def test_ready_fails_for_verify_only_engine(engine, tmp_path):
    public_only = CryptoEngine.from_pem(None, engine.get_public_key_pem())
    app = _make_app(public_only, tmp_path, MemoryContentStore())
    with app.test_client() as client:
        resp = client.get('/ready')
    assert resp.status_code == 503
    assert resp.get_json()['signing']['can_sign'] is False
