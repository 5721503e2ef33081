from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone

db = SQLAlchemy()

TITLE_MAX_LENGTH : int = 200
CONTENT_MAX_LENGTH : int = 100_000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Post(db.Model):
    __tablename__ = 'posts'

    id = db.Column(db.Integer, primary_key=True)
    short_id = db.Column(db.String(8), unique=True, nullable=False)
    secret = db.Column(db.String(36), unique=True, nullable=False)
    title = db.Column(db.String(TITLE_MAX_LENGTH), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def to_public_dict(self) -> dict:
        '''Raw-data view; never includes the secret.'''
        return {
            'id': self.short_id,
            'title': self.title,
            'content': self.content,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }
