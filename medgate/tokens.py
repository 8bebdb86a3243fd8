"""
Access/refresh credential pairs signed with PyJWT.

Access and refresh tokens are signed with different secrets, so holding one
never lets a caller forge the other. Verification never raises: callers get
either a Claims object or a falsy TokenInvalid carrying the reason.
"""
import base64
import hashlib
import hmac
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Union

import jwt

logger = logging.getLogger(__name__)

ROLE_USER = 'user'
ROLE_ADMIN = 'admin'
ADMIN_SUBJECT_PREFIX = 'admin_'

ACCESS = 'access'
REFRESH = 'refresh'

DEFAULT_EXPIRY_SEC = 15 * 60
_EXPIRY_RE = re.compile(r'^(\d+)([smhd])$')
_UNIT_SEC = {'s': 1, 'm': 60, 'h': 60 * 60, 'd': 24 * 60 * 60}

# Registered claims are not copied into Claims.attributes
_RESERVED = {'sub', 'role', 'type', 'iat', 'exp', 'iss', 'aud', 'jti'}


def parse_expiry(expiry) -> int:
    """'15m' / '7d' / '30s' / '2h' -> seconds. Unknown formats fall back to 15 minutes."""
    if isinstance(expiry, (int, float)):
        return int(expiry)
    match = _EXPIRY_RE.match(str(expiry).strip())
    if not match:
        return DEFAULT_EXPIRY_SEC
    return int(match.group(1)) * _UNIT_SEC[match.group(2)]


def derive_subject_id(hospital_name: str, product_batch: str, salt: str) -> str:
    """Stable per (hospital, batch) id that does not expose either value."""
    data = f"{hospital_name.strip()}:{product_batch.strip()}:{salt}"
    return hashlib.sha256(data.encode('utf-8')).hexdigest()


def admin_subject_id(username: str) -> str:
    return f"{ADMIN_SUBJECT_PREFIX}{username}"


@dataclass(frozen=True)
class CredentialPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in milliseconds

    def to_dict(self):
        return {
            'accessToken': self.access_token,
            'refreshToken': self.refresh_token,
            'expiresIn': self.expires_in,
        }


@dataclass(frozen=True)
class Claims:
    subject_id: str
    role: str
    token_type: str
    issued_at: int
    expires_at: int
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN or self.subject_id.startswith(ADMIN_SUBJECT_PREFIX)


@dataclass(frozen=True)
class TokenInvalid:
    reason: str

    def __bool__(self):
        return False


EXPIRED = TokenInvalid('expired')
INVALID = TokenInvalid('invalid')

VerifyResult = Union[Claims, TokenInvalid]


class TokenService:
    def __init__(self, access_secret: str, refresh_secret: str,
                 access_expiry='15m', refresh_expiry='7d',
                 issuer='hospital-login-system', audience='hospital-users',
                 clock: Optional[Callable[[], datetime]] = None):
        if not access_secret or not refresh_secret:
            raise RuntimeError('Token signing secrets are not configured')
        if access_secret == refresh_secret:
            raise RuntimeError('Access and refresh tokens must use different secrets')
        self._secrets = {ACCESS: access_secret, REFRESH: refresh_secret}
        self.access_ttl = parse_expiry(access_expiry)
        self.refresh_ttl = parse_expiry(refresh_expiry)
        if self.access_ttl >= self.refresh_ttl:
            raise RuntimeError('Access token lifetime must be shorter than refresh token lifetime')
        self.issuer = issuer
        self.audience = audience
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_config(cls, config):
        return cls(
            access_secret=config['JWT_ACCESS_SECRET'],
            refresh_secret=config['JWT_REFRESH_SECRET'],
            access_expiry=config.get('JWT_ACCESS_EXPIRY', '15m'),
            refresh_expiry=config.get('JWT_REFRESH_EXPIRY', '7d'),
            issuer=config.get('JWT_ISSUER', 'hospital-login-system'),
            audience=config.get('JWT_AUDIENCE', 'hospital-users'),
        )

    def _sign(self, subject_id, role, attributes, token_type, ttl):
        now = self._clock()
        payload = dict(attributes or {})
        payload.update({
            'sub': subject_id,
            'role': role,
            'type': token_type,
            'iat': now,
            'exp': now + timedelta(seconds=ttl),
            'iss': self.issuer,
            'aud': self.audience,
            'jti': uuid.uuid4().hex,
        })
        return jwt.encode(payload, self._secrets[token_type], algorithm='HS256')

    def issue(self, subject_id: str, role: str = ROLE_USER,
              attributes: Optional[Dict[str, Any]] = None) -> CredentialPair:
        """Generate a fresh access/refresh pair for one login."""
        return CredentialPair(
            access_token=self._sign(subject_id, role, attributes, ACCESS, self.access_ttl),
            refresh_token=self._sign(subject_id, role, attributes, REFRESH, self.refresh_ttl),
            expires_in=self.access_ttl * 1000,
        )

    def _verify(self, token: str, token_type: str) -> VerifyResult:
        if not token or not isinstance(token, str):
            return INVALID
        try:
            data = jwt.decode(
                token,
                self._secrets[token_type],
                algorithms=['HS256'],
                issuer=self.issuer,
                audience=self.audience,
                options={'require': ['exp', 'iat', 'sub', 'type']},
            )
        except jwt.ExpiredSignatureError:
            logger.debug(f"{token_type} token expired")
            return EXPIRED
        except jwt.PyJWTError as e:
            logger.debug(f"{token_type} token rejected: {e}")
            return INVALID

        if data.get('type') != token_type:
            return INVALID

        return Claims(
            subject_id=data['sub'],
            role=data.get('role', ROLE_USER),
            token_type=token_type,
            issued_at=int(data['iat']),
            expires_at=int(data['exp']),
            attributes={k: v for k, v in data.items() if k not in _RESERVED},
        )

    def verify_access(self, token: str) -> VerifyResult:
        return self._verify(token, ACCESS)

    def verify_refresh(self, token: str) -> VerifyResult:
        return self._verify(token, REFRESH)

    def refresh(self, refresh_token: str) -> Union[CredentialPair, TokenInvalid]:
        """Rotate: a valid refresh token buys a brand-new pair with the same claims."""
        claims = self.verify_refresh(refresh_token)
        if not claims:
            return claims
        return self.issue(claims.subject_id, claims.role, claims.attributes)


def extract_bearer(auth_header: Optional[str]) -> Optional[str]:
    if not auth_header or not auth_header.startswith('Bearer '):
        return None
    token = auth_header[len('Bearer '):].strip()
    return token or None


def _conversation_mac(secret: str, subject_id: str, conversation_id: str) -> str:
    msg = f"{subject_id}:{conversation_id}".encode('utf-8')
    digest = hmac.new(secret.encode('utf-8'), msg, hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b'=').decode('ascii')


def seal_conversation(secret: str, subject_id: str, conversation_id: str) -> str:
    """Opaque handle binding a backend conversation id to one subject."""
    return f"{conversation_id}.{_conversation_mac(secret, subject_id, conversation_id)}"


def open_conversation(secret: str, subject_id: str, handle: str) -> Optional[str]:
    """The conversation id inside handle, or None if it was not sealed for subject_id."""
    conversation_id, sep, mac = (handle or '').rpartition('.')
    if not sep or not conversation_id:
        return None
    expected = _conversation_mac(secret, subject_id, conversation_id)
    if not hmac.compare_digest(mac.encode('utf-8'), expected.encode('ascii')):
        return None
    return conversation_id
