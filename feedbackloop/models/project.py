import secrets
import string
import uuid
from datetime import datetime, timezone

from sqlalchemy import func
from feedbackloop.extensions import db
from .types import JSONType

TIER_BASIC = "basic"
TIER_CHOICES = ("basic", "pro", "enterprise")

DEFAULT_SETTINGS = {"remove_branding": False, "retention_days": 30}

_API_KEY_ALPHABET = string.ascii_letters + string.digits


def generate_api_key(length: int = 64) -> str:
    return "".join(secrets.choice(_API_KEY_ALPHABET) for _ in range(length))


class Project(db.Model):
    """A tenant's feedback endpoint: widget logic, security settings and feature limits."""

    __tablename__ = "projects"

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(50), nullable=False, unique=True)

    # Security
    domain_whitelist = db.Column(JSONType, nullable=False, default=list)
    api_key = db.Column(db.String(64), unique=True, default=generate_api_key)

    # {"theme": {...}, "logic": [{rating_group, title, tags, placeholder, collect_email, cta_redirect?}]}
    widget_config = db.Column(JSONType, nullable=False, default=dict)

    # Feature gating
    tier = db.Column(db.String(20), nullable=False, default=TIER_BASIC, server_default=TIER_BASIC)
    settings = db.Column(JSONType, nullable=False, default=lambda: dict(DEFAULT_SETTINGS))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    feedbacks = db.relationship("Feedback", back_populates="project", cascade="all, delete-orphan", passive_deletes=True, lazy="dynamic")
    webhooks = db.relationship("Webhook", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def retention_days(self) -> int:
        value = (self.settings or {}).get("retention_days")
        return value if isinstance(value, int) and value > 0 else DEFAULT_SETTINGS["retention_days"]

    def to_dict(self) -> dict:
        return dict(
            id=str(self.id),
            owner_id=self.owner_id,
            name=self.name,
            slug=self.slug,
            domain_whitelist=list(self.domain_whitelist or []),
            api_key=self.api_key,
            widget_config=self.widget_config or {},
            tier=self.tier,
            settings={**DEFAULT_SETTINGS, **(self.settings or {})},
            created_at=self.created_at.isoformat() if self.created_at else None,
            updated_at=self.updated_at.isoformat() if self.updated_at else None,
        )

    def __repr__(self) -> str:
        return f"<Project id={self.id} slug={self.slug!r}>"
