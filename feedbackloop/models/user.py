from datetime import datetime, timezone
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from sqlalchemy import func
from feedbackloop.extensions import db, login_manager

class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)  # stored lower-cased
    name = db.Column(db.String(255), nullable=True)
    username = db.Column(db.String(50), nullable=True, unique=True)
    image = db.Column(db.Text, nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Single-use password reset: signed token is mirrored here so it can be revoked
    reset_password_token = db.Column(db.String(512), nullable=True)
    reset_password_expires = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    roles = db.relationship("Role", secondary="user_roles", back_populates="users", lazy="selectin")

    # helpers
    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def get_id(self) -> str:
        return str(self.id)

    def reset_token_valid(self, token: str) -> bool:
        if not token or self.reset_password_token != token or not self.reset_password_expires:
            return False
        expires = self.reset_password_expires
        if expires.tzinfo is None:
            # SQLite hands back naive datetimes
            expires = expires.replace(tzinfo=timezone.utc)
        return expires > datetime.now(timezone.utc)

    def clear_reset_token(self) -> None:
        self.reset_password_token = None
        self.reset_password_expires = None

    def to_dict(self, with_roles: bool = False) -> dict:
        data = dict(
            id=self.id,
            email=self.email,
            name=self.name,
            username=self.username,
            image=self.image,
            is_active=self.is_active,
            created_at=self.created_at.isoformat() if self.created_at else None,
            updated_at=self.updated_at.isoformat() if self.updated_at else None,
        )
        if with_roles:
            data["roles"] = [r.to_dict() for r in self.roles]
        return data

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"

@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None
