"""
Caller identity.

Authentication happens in front of the engine; the gateway forwards the
authenticated user as ``X-User-Id`` / ``X-User-Role`` headers. Flask-Login
turns them into ``current_user`` for each request so the audit columns and
admin checks read it the usual way.
"""
from flask import request
from flask_login import AnonymousUserMixin, UserMixin

from fulfil import login_manager
from fulfil.logger import get_logger

logger = get_logger("fulfil.auth")

ADMIN_ROLE = 'admin'


class Actor(UserMixin):
    """The user a request is made on behalf of"""

    def __init__(self, user_id, role=None):
        self.id = str(user_id)
        self.role = (role or '').strip().lower() or None

    @property
    def is_admin(self):
        return self.role == ADMIN_ROLE

    def __repr__(self):
        return f'<Actor {self.id} ({self.role or "user"})>'


class AnonymousActor(AnonymousUserMixin):
    id = None
    role = None
    is_admin = False


login_manager.anonymous_user = AnonymousActor


@login_manager.user_loader
def load_user(user_id):
    # No server-side sessions; identity is re-read from the headers on every request
    return None


@login_manager.request_loader
def load_user_from_request(req):
    user_id = (req.headers.get('X-User-Id') or '').strip()
    if not user_id:
        return None
    actor = Actor(user_id, req.headers.get('X-User-Role'))
    logger.debug(f"Request {request.method} {request.path} on behalf of {actor}")
    return actor
