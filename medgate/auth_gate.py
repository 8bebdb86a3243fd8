"""
Per-request admission control.

Two credential carriers are honoured side by side: a bearer access token and
the signed session cookie left over from the session-only login. Each carrier
is an extractor; the gate asks them in order and admits the first identity
that fits the route. The gate never refreshes tokens; clients call
/api/auth/refresh themselves and retry.
"""
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import current_app, g, request

from .errors import AuthExpired, AuthForbidden, AuthRequired
from .tokens import EXPIRED, ROLE_ADMIN, ROLE_USER, extract_bearer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    subject_id: str
    role: str
    source: str
    hospital_name: Optional[str] = None
    product_batch: Optional[str] = None
    username: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class BearerExtractor:
    name = 'bearer'

    def __init__(self, token_service):
        self.token_service = token_service

    def extract(self, req):
        token = extract_bearer(req.headers.get('Authorization'))
        if not token:
            return None
        claims = self.token_service.verify_access(token)
        if not claims:
            # EXPIRED is passed up so the gate can tell the client to refresh
            return EXPIRED if claims is EXPIRED else None
        return Identity(
            subject_id=claims.subject_id,
            role=ROLE_ADMIN if claims.is_admin else ROLE_USER,
            source=self.name,
            hospital_name=claims.attributes.get('hospital_name'),
            product_batch=claims.attributes.get('product_batch'),
            username=claims.attributes.get('username'),
        )


class SessionExtractor:
    name = 'session'

    def __init__(self, session_store):
        self.session_store = session_store

    def extract(self, req):
        state = self.session_store.read()
        if state is None:
            return None
        return Identity(
            subject_id=state.subject_id,
            role=state.role,
            source=self.name,
            hospital_name=state.hospital_name,
            product_batch=state.product_batch,
            username=state.username,
        )


class AuthGate:
    def __init__(self, extractors):
        self.extractors = list(extractors)

    def authenticate(self, req, admin: bool = False) -> Identity:
        expired = False
        wrong_role = False
        for extractor in self.extractors:
            found = extractor.extract(req)
            if found is EXPIRED:
                expired = True
                continue
            if found is None:
                continue
            if admin and not found.is_admin:
                wrong_role = True
                continue
            return found

        if wrong_role:
            logger.info(f"Admin route refused for non-admin caller: {req.path}")
            raise AuthForbidden()
        if expired:
            raise AuthExpired()
        logger.debug(f"No usable credential for {req.method} {req.path}")
        raise AuthRequired('Admin login required' if admin else None)


def _gate():
    return current_app.extensions['auth_gate']


def login_required(f):
    """Decorator to ensure the request carries a usable user or admin credential."""
    @wraps(f)
    def decorated(*args, **kwargs):
        identity = _gate().authenticate(request)
        g.identity = identity
        return f(identity, *args, **kwargs)
    return decorated


def admin_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        identity = _gate().authenticate(request, admin=True)
        g.identity = identity
        return f(identity, *args, **kwargs)
    return decorated
