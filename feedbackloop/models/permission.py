from sqlalchemy import func
from feedbackloop.extensions import db

WILDCARD = "*"


class Permission(db.Model):
    __tablename__ = "permissions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    slug = db.Column(db.String(100), nullable=False, unique=True)  # "users.create", or "*"
    description = db.Column(db.Text, nullable=True)
    resource = db.Column(db.String(50), nullable=False, index=True)  # matches Resource.identifier
    action = db.Column(db.String(50), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    roles = db.relationship("Role", secondary="role_permissions", back_populates="permissions", lazy="selectin")

    def to_dict(self) -> dict:
        return dict(
            id=self.id,
            name=self.name,
            slug=self.slug,
            description=self.description,
            resource=self.resource,
            action=self.action,
            created_at=self.created_at.isoformat() if self.created_at else None,
            updated_at=self.updated_at.isoformat() if self.updated_at else None,
        )

    def __repr__(self) -> str:
        return f"<Permission id={self.id} slug={self.slug!r}>"
