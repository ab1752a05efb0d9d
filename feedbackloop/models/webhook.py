import uuid

from sqlalchemy import func
from feedbackloop.extensions import db
from .types import JSONType

EVENT_FEEDBACK_CREATED = "feedback.created"
EVENT_FEEDBACK_ALERT = "feedback.alert"
EVENT_CHOICES = (EVENT_FEEDBACK_CREATED, EVENT_FEEDBACK_ALERT)


class Webhook(db.Model):
    __tablename__ = "webhooks"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    project_id = db.Column(db.Uuid, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    url = db.Column(db.Text, nullable=False)
    events = db.Column(JSONType, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=db.true())
    secret_key = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    project = db.relationship("Project", back_populates="webhooks")

    def to_dict(self) -> dict:
        # secret_key is write-only
        return dict(
            id=str(self.id),
            project_id=str(self.project_id),
            url=self.url,
            events=list(self.events or []),
            is_active=self.is_active,
            has_secret=bool(self.secret_key),
            created_at=self.created_at.isoformat() if self.created_at else None,
        )
