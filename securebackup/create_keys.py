# securebackup/create_keys.py
# Generates the RSA key pair the service signs metadata with.
# Usage: python -m securebackup.create_keys [output_dir]

import os
import sys

from securebackup.encryption.crypto_engine import CryptoEngine

KEY_SIZE = int(os.environ.get('SIGNING_KEY_SIZE', '3072'))


def write_keypair(out_dir, key_size=KEY_SIZE, overwrite=False):
    private_path = os.path.join(out_dir, 'private.pem')
    public_path = os.path.join(out_dir, 'public.pem')
    if not overwrite and (os.path.exists(private_path) or os.path.exists(public_path)):
        raise FileExistsError(f"Refusing to overwrite existing keys in {out_dir}")

    os.makedirs(out_dir, exist_ok=True)
    engine = CryptoEngine.generate(key_size=key_size)
    with open(private_path, 'w') as f:
        f.write(engine.get_private_key_pem())
    os.chmod(private_path, 0o600)
    with open(public_path, 'w') as f:
        f.write(engine.get_public_key_pem())
    return private_path, public_path


if __name__ == "__main__":
    out_dir = sys.argv[1] if len(sys.argv) > 1 else 'keys'
    private_path, public_path = write_keypair(out_dir)
    print(f"Private key written to {private_path} (keep it secret)")
    print(f"Public key written to {public_path} (share it with anyone who audits metadata)")
