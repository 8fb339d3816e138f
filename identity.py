import logging
import secrets
import threading
import time
from functools import wraps

from flask import current_app
from flask_login import UserMixin, current_user, login_required
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

from database import Role
from errors import AuthError, Forbidden

logger = logging.getLogger(__name__)

KIND_USER = "user"
KIND_RESTAURANT = "restaurant"
KIND_ADMIN = "admin"


def norm_role(role) -> str:
    r = (role or "").strip().lower()
    r = r.replace("-", " ").replace("_", " ")
    r = "_".join(r.split())

    aliases = {
        "administrator": "admin",
        "superadmin": "super_admin",
        "restaurant_owner": "restaurant",
        "owner": "restaurant",
        "user": "customer",
    }
    return aliases.get(r, r)


class Principal(UserMixin):
    def __init__(self, id, email, role, kind):
        self.id = int(id)
        self.email = email
        self.role = norm_role(role)
        self.kind = kind

    def get_id(self):
        return f"{self.kind}:{self.id}"

    @property
    def is_customer(self):
        return self.role == Role.CUSTOMER.value

    @property
    def is_restaurant(self):
        return self.role == Role.RESTAURANT.value

    @property
    def is_super_admin(self):
        return self.role == Role.SUPER_ADMIN.value

    def to_dict(self):
        return {"id": self.id, "email": self.email, "role": self.role, "kind": self.kind}

    def __repr__(self):
        return f"<Principal {self.kind}:{self.id} {self.role}>"


class RevocationStore:
    # token -> time revoked; entries older than max_age can only match expired tokens
    def __init__(self, max_age=None, clock=time.monotonic):
        self.max_age = max_age
        self._clock = clock
        self._tokens = {}
        self._lock = threading.Lock()

    def add(self, token):
        with self._lock:
            now = self._clock()
            if self.max_age is not None:
                cutoff = now - self.max_age
                for old in [t for t, at in self._tokens.items() if at < cutoff]:
                    del self._tokens[old]
            self._tokens[token] = now

    def clear(self):
        with self._lock:
            self._tokens.clear()

    def __contains__(self, token):
        with self._lock:
            return token in self._tokens

    def __len__(self):
        with self._lock:
            return len(self._tokens)


class IdentityOracle:
    def __init__(self, secret_key, max_age=3600, revocations=None, salt="access-token"):
        self.serializer = URLSafeTimedSerializer(secret_key, salt=salt)
        self.max_age = max_age
        self.revocations = revocations if revocations is not None else RevocationStore(max_age=max_age)

    def issue(self, principal) -> str:
        return self.serializer.dumps({
            "kind": principal.kind,
            "id": principal.id,
            "email": principal.email,
            "role": principal.role,
            "jti": secrets.token_hex(8)
        })

    def authenticate(self, credential) -> Principal:
        if not credential:
            raise AuthError("Unauthorized: No token provided!")
        if credential in self.revocations:
            raise AuthError("Token has been revoked")
        try:
            payload = self.serializer.loads(credential, max_age=self.max_age)
        except SignatureExpired:
            raise AuthError("Token expired")
        except BadSignature:
            raise AuthError("Invalid token")

        try:
            return Principal(payload["id"], payload["email"], payload["role"], payload["kind"])
        except (KeyError, TypeError, ValueError):
            raise AuthError("Invalid token")

    def revoke(self, credential):
        self.revocations.add(credential)
        logger.info("Credential revoked (%d revoked this process)", len(self.revocations))


def identity_oracle() -> IdentityOracle:
    return current_app.extensions["identity"]


def bearer_token(req):
    header = req.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_roles(*roles):
    allowed = {norm_role(r) for r in roles}

    def deco(fn):
        @wraps(fn)
        @login_required
        def wrapper(*args, **kwargs):
            if norm_role(getattr(current_user, "role", "")) not in allowed:
                raise Forbidden("Forbidden: insufficient role")
            return fn(*args, **kwargs)
        return wrapper
    return deco
