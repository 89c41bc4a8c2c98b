# securebackup/encryption/crypto_engine.py

"""Symmetric encryption, hashing and RSA signing primitives.

Backups are encrypted with AES-256-CBC and PKCS#7 padding under a fresh key
and IV per backup. Metadata records are signed with RSA-SHA256 using PKCS#1
v1.5 padding by the backup authority's private key; anyone holding the public
key can verify them.

The RSA key pair belongs to an explicitly constructed engine instance and is
never rotated during its lifetime. Construct a new engine to rotate keys.

Usage:
    engine = CryptoEngine.from_files('keys/private.pem', 'keys/public.pem')

    key = engine.generate_key()
    iv, ciphertext = engine.encrypt(b'file bytes', key)
    plaintext = engine.decrypt(ciphertext, key, iv)

    signature = engine.sign(b'payload')
    assert engine.verify(b'payload', signature)
"""

import hashlib
import os
import secrets

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from securebackup.errors import CryptoError, InvalidKeyOrIvError, InvalidPaddingError


class CryptoEngine:
    KEY_SIZE = 32    # AES-256
    IV_SIZE = 16     # one AES block
    BLOCK_BITS = 128

    def __init__(self, private_key=None, public_key=None):
        if private_key is not None and not isinstance(private_key, rsa.RSAPrivateKey):
            raise CryptoError("Signing key must be an RSA private key")
        if public_key is None and private_key is not None:
            public_key = private_key.public_key()
        if public_key is None:
            raise CryptoError("No public key available")
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise CryptoError("Verification key must be an RSA public key")
        self._private_key = private_key
        self._public_key = public_key

    @classmethod
    def generate(cls, key_size: int = 2048) -> "CryptoEngine":
        """Create an engine with a freshly generated key pair."""
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        return cls(private_key=private_key)

    @classmethod
    def from_pem(cls, private_pem: bytes = None, public_pem: bytes = None,
                 password: bytes = None) -> "CryptoEngine":
        if isinstance(private_pem, str):
            private_pem = private_pem.encode()
        if isinstance(public_pem, str):
            public_pem = public_pem.encode()
        if isinstance(password, str):
            password = password.encode()
        try:
            private_key = None
            public_key = None
            if private_pem:
                private_key = serialization.load_pem_private_key(private_pem, password=password)
            if public_pem:
                public_key = serialization.load_pem_public_key(public_pem)
        except (ValueError, TypeError) as e:
            raise CryptoError(f"Unable to load RSA key: {e}") from e
        return cls(private_key=private_key, public_key=public_key)

    @classmethod
    def from_files(cls, private_key_path: str = None, public_key_path: str = None,
                   password: bytes = None) -> "CryptoEngine":
        """Load the key pair from PEM files.

        Either path may be omitted: a missing public key is derived from the
        private key, and an engine without a private key can only verify.
        """
        private_pem = None
        public_pem = None
        if private_key_path and os.path.exists(private_key_path):
            with open(private_key_path, 'rb') as f:
                private_pem = f.read()
        if public_key_path and os.path.exists(public_key_path):
            with open(public_key_path, 'rb') as f:
                public_pem = f.read()
        if private_pem is None and public_pem is None:
            raise CryptoError(
                f"No RSA key found at {private_key_path!r} or {public_key_path!r}"
            )
        return cls.from_pem(private_pem, public_pem, password=password)

    @property
    def can_sign(self) -> bool:
        return self._private_key is not None

    def get_public_key_pem(self) -> str:
        pem = self._public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo)
        return pem.decode()

    def get_private_key_pem(self) -> str:
        if not self._private_key:
            raise CryptoError("No private key available")
        pem = self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption())
        return pem.decode()

    # -- symmetric -------------------------------------------------------

    def generate_key(self) -> bytes:
        return secrets.token_bytes(self.KEY_SIZE)

    def encrypt(self, plaintext: bytes, key: bytes) -> tuple:
        """Encrypt with AES-256-CBC under a fresh random IV. Returns (iv, ciphertext)."""
        self._check_key(key)
        iv = secrets.token_bytes(self.IV_SIZE)
        try:
            padder = sym_padding.PKCS7(self.BLOCK_BITS).padder()
            padded = padder.update(plaintext) + padder.finalize()
            encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except (ValueError, TypeError) as e:
            raise CryptoError(f"Encryption failed: {e}") from e
        return iv, ciphertext

    def decrypt(self, ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
        self._check_key(key)
        if not isinstance(iv, (bytes, bytearray)) or len(iv) != self.IV_SIZE:
            raise InvalidKeyOrIvError(f"IV must be {self.IV_SIZE} bytes")
        block_size = self.BLOCK_BITS // 8
        if not ciphertext or len(ciphertext) % block_size:
            raise InvalidPaddingError(
                f"Ciphertext length {len(ciphertext)} is not a positive multiple of {block_size}"
            )
        try:
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
        except (ValueError, TypeError) as e:
            raise CryptoError(f"Decryption failed: {e}") from e
        try:
            unpadder = sym_padding.PKCS7(self.BLOCK_BITS).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            # Wrong key, wrong IV or corrupted ciphertext all look the same here
            raise InvalidPaddingError(f"Invalid padding after decryption: {e}") from e

    def _check_key(self, key):
        if not isinstance(key, (bytes, bytearray)) or len(key) != self.KEY_SIZE:
            raise InvalidKeyOrIvError(f"Key must be {self.KEY_SIZE} bytes")

    # -- hashing and signatures -----------------------------------------

    @staticmethod
    def digest(data: bytes) -> bytes:
        return hashlib.sha256(data).digest()

    def sign(self, data: bytes) -> bytes:
        if not self._private_key:
            raise CryptoError("No private key available")
        try:
            return self._private_key.sign(data, asym_padding.PKCS1v15(), hashes.SHA256())
        except (ValueError, TypeError) as e:
            raise CryptoError(f"Signing failed: {e}") from e

    def verify(self, data: bytes, signature: bytes) -> bool:
        """Return True only if signature is a valid RSA-SHA256 signature over data."""
        try:
            self._public_key.verify(signature, data, asym_padding.PKCS1v15(), hashes.SHA256())
            return True
        except (InvalidSignature, ValueError, TypeError):
            return False
