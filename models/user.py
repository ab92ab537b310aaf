from datetime import datetime
from models.db import db

PLAYER = "PLAYER"
OWNER = "OWNER"
ADMIN = "ADMIN"

user_roles = db.Table(
    "user_roles",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
    db.Column("role_id", db.Integer, db.ForeignKey("roles.id"), primary_key=True),
)

class User(db.Model):
    """
    Accounts are written by the identity service. The booking engine only
    needs the id (ownership checks) and the roles (owner/admin gates).
    """
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(120), nullable=True)
    phone_number = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    roles = db.relationship("Role", secondary=user_roles, back_populates="users")

    @property
    def role_names(self) -> set:
        return {r.name for r in self.roles}

    @property
    def is_admin(self) -> bool:
        return ADMIN in self.role_names

    def has_any_role(self, *names: str) -> bool:
        # ADMIN passes every role gate
        return self.is_admin or bool(self.role_names.intersection(names))

class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)

    users = db.relationship("User", secondary=user_roles, back_populates="roles")
