"""Safety document repository. Records are create/delete only."""

from portal.core.exceptions import ValidationError
from portal.models.safety_doc import SAFETY_DOC_TYPES, SafetyDoc
from portal.repositories.base import Repository, new_id
from portal.utils.helpers import optional_text, parse_iso_date, require_text, validate_choice, validate_url


class SafetyDocRepository(Repository):
    model = SafetyDoc
    collection = "safety_docs"
    label = "SafetyDoc"

    def create(self, owner_uid, data, *, created_by):
        issue_date = parse_iso_date(data.get("issue_date"), "issue_date", required=True)
        expiry_date = parse_iso_date(data.get("expiry_date"), "expiry_date")
        if expiry_date is not None and expiry_date < issue_date:
            raise ValidationError(
                "expiry_date must not be before issue_date", details={"expiry_date": "before_issue"},
            )
        doc = SafetyDoc(
            id=new_id(),
            owner_uid=owner_uid,
            doc_type=validate_choice(data.get("type") or "OUTRO", SAFETY_DOC_TYPES, "type"),
            title=require_text(data, "title", max_length=300),
            issue_date=issue_date,
            expiry_date=expiry_date,
            url=validate_url(data.get("url"), "url"),
            notes=optional_text(data, "notes"),
            created_by_uid=created_by.id,
            created_by_name=created_by.name,
        )
        return self.stage_upsert(doc)

    def for_owner(self, owner_uid):
        return (
            SafetyDoc.query.filter_by(owner_uid=owner_uid)
            .order_by(SafetyDoc.issue_date.desc(), SafetyDoc.created_at.desc())
            .all()
        )
