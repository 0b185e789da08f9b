"""Contractor safety-certification records (NR10, NR33, NR35, ASO, ...)."""

from datetime import datetime, timezone

from portal.models import db

SAFETY_DOC_TYPES = ("NR10", "NR33", "NR35", "ASO", "OUTRO")


class SafetyDoc(db.Model):
    """
    Compliance record owned by one contractor.

    Never updated in place: corrections are delete + recreate.
    Visible only to the owner and to admins.
    """

    __tablename__ = "safety_docs"

    id = db.Column(db.String(36), primary_key=True)
    owner_uid = db.Column(db.String(128), nullable=False, index=True)
    doc_type = db.Column(db.String(10), nullable=False, default="OUTRO")
    title = db.Column(db.String(300), nullable=False)
    issue_date = db.Column(db.Date, nullable=False)
    expiry_date = db.Column(db.Date, nullable=True)
    url = db.Column(db.String(1000), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_uid = db.Column(db.String(128), nullable=False)
    created_by_name = db.Column(db.String(200), nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def is_expired(self, today):
        return self.expiry_date is not None and self.expiry_date < today

    def to_dict(self, today=None):
        result = {
            "id": self.id,
            "owner_uid": self.owner_uid,
            "type": self.doc_type,
            "title": self.title,
            "issue_date": self.issue_date.isoformat() if self.issue_date else None,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "url": self.url,
            "notes": self.notes,
            "created_by_uid": self.created_by_uid,
            "created_by_name": self.created_by_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if today is not None:
            result["is_expired"] = self.is_expired(today)
        return result

    def __repr__(self):
        return f"<SafetyDoc {self.id}: {self.doc_type} {self.owner_uid}>"
