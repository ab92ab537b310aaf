from flask import current_app

from models import db
from models.user import ADMIN, OWNER, PLAYER, Role

DEFAULT_ROLES = (PLAYER, OWNER, ADMIN)

def seed_roles():
    existing = {name for (name,) in db.session.query(Role.name)}
    missing = [name for name in DEFAULT_ROLES if name not in existing]
    if not missing:
        return
    db.session.add_all(Role(name=name) for name in missing)
    db.session.commit()
    current_app.logger.info("Seeded roles: %s", ", ".join(missing))
