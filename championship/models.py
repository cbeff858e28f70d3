from .app import db
from flask_login import UserMixin
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
import json
import uuid

from .permissions import (
    PERMISSION_ACTIONS,
    PERMISSION_MODULES,
    ROLE_ADMIN,
    ROLE_SUPERADMIN,
    ROLE_USER,
    normalize_tenant_id,
    parse_permissions,
)

ROLES = (ROLE_USER, ROLE_ADMIN, ROLE_SUPERADMIN)

CLIENT_ACTIVE = 'ACTIVE'
CLIENT_INACTIVE = 'INACTIVE'

# Permission blob given to new operators of a tenant.
DEFAULT_USER_PERMISSIONS = {
    'teams': {'view': True},
    'players': {'view': True},
    'groups': {'view': True},
    'games': {'view': True},
    'standings': {'view': True},
}


class Client(db.Model):
    """A tenant. Every team, player and non-global user belongs to one."""

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False,
                     default=lambda: uuid.uuid4().hex[:12])
    status = db.Column(db.String(20), nullable=False, default=CLIENT_ACTIVE)
    expires_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def is_available(self, now=None):
        now = now or datetime.utcnow()
        if self.status != CLIENT_ACTIVE:
            return False
        return self.expires_at is None or now <= self.expires_at


class User(db.Model, UserMixin):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.Text, nullable=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_USER)
    client_id = db.Column(db.Integer, db.ForeignKey('client.id'), nullable=True)
    # JSON object: {module: {action: true}}
    permissions = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    # Bumped whenever the permission blob changes so older tokens can be
    # recognised as stale.
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    client = db.relationship('Client', backref=db.backref('users', lazy=True))

    def set_password(self, pw):
        self.password_hash = generate_password_hash(pw)

    def check_password(self, pw):
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, pw)

    @property
    def tenant_id(self):
        return normalize_tenant_id(self.client_id)

    @property
    def is_admin(self):
        return self.role in (ROLE_ADMIN, ROLE_SUPERADMIN)

    def permissions_dict(self):
        return parse_permissions(self.permissions)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'clientId': self.tenant_id,
            'permissions': self.permissions_dict(),
        }


class Team(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey('client.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    client = db.relationship('Client')


class Player(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=True)
    client_id = db.Column(db.Integer, db.ForeignKey('client.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    team = db.relationship(
        'Team',
        backref=db.backref('players', cascade='all, delete-orphan')
    )


class SiteLog(db.Model):
    __bind_key__ = 'logs'
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(200), nullable=False)
    result = db.Column(db.String(200), nullable=False)
    error = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)
    user_id = db.Column(db.Integer, nullable=True)
    # relationship loaded manually to avoid cross-db foreign key


def log_site(action, result, error=None, user_id=None):
    try:
        user_id = int(user_id) if user_id is not None else None
    except (TypeError, ValueError):
        user_id = None
    db.session.add(SiteLog(action=action, result=result, error=error, user_id=user_id))
    db.session.commit()


def load_user_permissions(user_id):
    """Return the stored permission blob of ``user_id`` (``{}`` if none)."""
    user = db.session.get(User, int(user_id))
    if user is None:
        return None
    return user.permissions_dict()


def save_user_permissions(user_id, permissions):
    """Replace the whole permission blob of ``user_id``.

    ``permissions`` must already be validated. Returns the updated user or
    ``None`` when it does not exist.
    """
    user = db.session.get(User, int(user_id))
    if user is None:
        return None
    user.permissions = json.dumps(parse_permissions(permissions), sort_keys=True)
    user.updated_at = datetime.utcnow()
    db.session.commit()
    return user


def permission_matrix():
    """Rows for the permission editor: ``[(module, label, [(action, label)])]``."""
    actions = list(PERMISSION_ACTIONS.items())
    return [(module, label, actions) for module, label in PERMISSION_MODULES.items()]
