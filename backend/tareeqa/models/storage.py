from __future__ import annotations

from ..extensions import db
from tareeqa.time_utils import utcnow


class StorageEntry(db.Model):
    """
    One key/value pair of the local persistence medium.

    WHY: The security core treats storage as an opaque string store
    (get/set/remove/list). Values are codec artifacts or legacy plaintext;
    this table never interprets them.

    LAST WRITE WINS: No versioning or transactions beyond a single row.
    """
    __tablename__ = "storage_entries"

    key = db.Column(db.String(255), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
