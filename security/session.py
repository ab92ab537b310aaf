"""
Server-side sessions. Tokens are issued by the identity service; this engine
only resolves the cookie to a user. `create_session` exists for the CLI and
tests.
"""
import hashlib
import secrets
from datetime import datetime, timedelta
from flask import request, current_app

from models import db
from models.session import Session

def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()

def create_session(user_id: int, lifetime_seconds: int = 8 * 60 * 60) -> str:
    """
    Creates a session row and returns the RAW token (to set as cookie).
    Only the hash is stored in DB.
    """
    raw_token = secrets.token_urlsafe(32)
    row = Session(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=datetime.utcnow() + timedelta(seconds=lifetime_seconds),
    )
    db.session.add(row)
    db.session.commit()
    return raw_token

def revoke_session(raw_token: str) -> bool:
    sess = Session.query.filter_by(token_hash=_hash_token(raw_token), revoked=False).first()
    if sess is None:
        return False
    sess.revoked = True
    db.session.commit()
    return True

def get_session_from_request():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "courtslot_session")
    raw_token = request.cookies.get(cookie_name)
    if not raw_token:
        return None

    sess = Session.query.filter_by(token_hash=_hash_token(raw_token)).first()
    now = datetime.utcnow()
    if sess is None or not sess.is_live(now, current_app.config.get("IDLE_TIMEOUT_SECONDS", 1200)):
        return None

    sess.last_seen_at = now
    db.session.commit()
    return sess
