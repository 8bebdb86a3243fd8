"""
Cookie-backed session fallback.

The session lives entirely in Flask's signed cookie; nothing is stored on the
server. Anything that fails to decode, has been tampered with, or is past its
absolute expiry reads back as "no session".
"""
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from flask import session

from .tokens import ROLE_ADMIN, ROLE_USER


@dataclass
class SessionState:
    subject_id: str
    role: str = ROLE_USER
    hospital_name: Optional[str] = None
    product_batch: Optional[str] = None
    username: Optional[str] = None
    conversation_id: Optional[str] = None
    expires_at: float = 0.0
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self):
        return {
            'subject_id': self.subject_id,
            'role': self.role,
            'hospital_name': self.hospital_name,
            'product_batch': self.product_batch,
            'username': self.username,
            'conversation_id': self.conversation_id,
            'expires_at': self.expires_at,
            'extra': dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            subject_id=data['subject_id'],
            role=data.get('role', ROLE_USER),
            hospital_name=data.get('hospital_name'),
            product_batch=data.get('product_batch'),
            username=data.get('username'),
            conversation_id=data.get('conversation_id'),
            expires_at=float(data.get('expires_at', 0)),
            extra=dict(data.get('extra') or {}),
        )


class SessionStore:
    KEY = 'identity'

    def __init__(self, ttl_seconds: float, clock=time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def establish(self, state: SessionState) -> SessionState:
        """Replace whatever the cookie held with a fresh identity."""
        state.expires_at = self._clock() + self.ttl_seconds
        session.clear()
        session.permanent = True
        session[self.KEY] = state.to_dict()
        return state

    def read(self) -> Optional[SessionState]:
        data = session.get(self.KEY)
        if not isinstance(data, dict):
            return None
        try:
            state = SessionState.from_dict(data)
        except (KeyError, TypeError, ValueError):
            return None
        if state.expires_at <= self._clock():
            return None
        return state

    def update(self, **fields) -> Optional[SessionState]:
        """Change fields of the current session without extending its expiry."""
        state = self.read()
        if state is None:
            return None
        for name, value in fields.items():
            setattr(state, name, value)
        session[self.KEY] = state.to_dict()
        return state

    def clear(self):
        session.clear()
