# matchdesk/security.py
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Optional

from flask_login import current_user

from .errors import Forbidden, Unauthorized


class Role(str, Enum):
    CLIENT = "client"
    FREELANCER = "freelancer"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """Who is calling the engine. Passed explicitly into every entry point."""
    id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def current_actor() -> Optional[Actor]:
    if not getattr(current_user, "is_authenticated", False):
        return None
    try:
        role = Role(current_user.role)
    except ValueError:
        return None
    return Actor(id=current_user.id, role=role)


def require_actor(actor: Optional[Actor], *roles: Role) -> Actor:
    if actor is None:
        raise Unauthorized()
    if roles and actor.role not in roles:
        raise Forbidden(f"Requires role: {', '.join(r.value for r in roles)}.")
    return actor


def roles_required(*roles):
    """Route guard. Accepts Role members or their string values."""
    wanted = tuple(Role(r) for r in roles)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            require_actor(current_actor(), *wanted)
            return fn(*args, **kwargs)
        return wrapper
    return decorator
