import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, func
from feedbackloop.extensions import db
from .types import JSONType

STATUS_NEW = "new"
STATUS_READ = "read"
STATUS_ARCHIVED = "archived"
STATUS_CHOICES = (STATUS_NEW, STATUS_READ, STATUS_ARCHIVED)


def _utcnow():
    return datetime.now(timezone.utc)


class Feedback(db.Model):
    __tablename__ = "feedbacks"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    project_id = db.Column(db.Uuid, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)

    # Primary metrics, indexed for the dashboard
    rating = db.Column(db.SmallInteger, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_NEW, server_default=STATUS_NEW)

    # {"tags": [...], "comment": "...", "email": "..."}
    answers = db.Column(JSONType, nullable=False, default=dict)
    # {"url", "user_agent", "device_type", "os", "browser", "geo"}
    meta = db.Column(JSONType, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())

    project = db.relationship("Project", back_populates="feedbacks")

    __table_args__ = (
        db.Index("ix_feedbacks_project_created_at", "project_id", "created_at"),
        db.Index("ix_feedbacks_project_rating", "project_id", "rating"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_feedbacks_rating_range"),
        CheckConstraint("status IN ('new','read','archived')", name="ck_feedbacks_status_valid"),
    )

    @property
    def tags(self) -> list:
        tags = (self.answers or {}).get("tags") or []
        return [t for t in tags if isinstance(t, str)]

    def to_dict(self) -> dict:
        return dict(
            id=str(self.id),
            project_id=str(self.project_id),
            rating=self.rating,
            status=self.status,
            answers=self.answers or {},
            meta=self.meta or {},
            created_at=self.created_at.isoformat() if self.created_at else None,
        )

    def __repr__(self) -> str:
        return f"<Feedback id={self.id} project_id={self.project_id} rating={self.rating}>"
