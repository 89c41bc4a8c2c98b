# securebackup/database/models.py

from securebackup import db
from datetime import datetime

# Ciphertext blobs keyed by their content id. Keys, IVs and metadata are never stored here.

class StoredBlob(db.Model):
    __tablename__ = 'stored_blobs'
    content_id = db.Column(db.String(128), primary_key=True)
    data = db.Column(db.LargeBinary, nullable=False)
    size = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<StoredBlob {self.content_id} ({self.size} bytes)>'
