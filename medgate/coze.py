"""
Thin client for the Coze v3 chat API.

Three calls are used: create a chat (submit one user message), retrieve its
status, and list its messages. Every transport problem is turned into
BackendUnavailable and every well-formed refusal into BackendRejected, so no
requests exception escapes this module.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import requests

from .errors import BackendRejected, BackendUnavailable

logger = logging.getLogger(__name__)

STATUS_COMPLETED = 'completed'
STATUS_FAILED = 'failed'
STATUS_IN_PROGRESS = 'in_progress'
# Coze also reports these; both are final from our point of view
TERMINAL_FAILURES = {STATUS_FAILED, 'canceled', 'requires_action'}


@dataclass(frozen=True)
class Submission:
    chat_id: str
    conversation_id: str
    status: str = 'created'


def pick_answer(messages) -> Optional[str]:
    """The assistant's final answer, skipping tool calls, follow-ups and verbose messages."""
    for msg in messages or []:
        if msg.get('role') == 'assistant' and msg.get('type') == 'answer' and msg.get('content'):
            return msg['content']
    return None


class CozeClient:
    def __init__(self, api_base: str, token: str, bot_id: str, timeout: float = 10.0, session=None):
        self.api_base = (api_base or '').rstrip('/')
        self.token = token
        self.bot_id = bot_id
        self.timeout = timeout
        self.http = session or requests

    @classmethod
    def from_config(cls, config):
        return cls(
            api_base=config.get('COZE_API_BASE', 'https://api.coze.cn'),
            token=config.get('COZE_PAT'),
            bot_id=config.get('COZE_BOT_ID'),
            timeout=config.get('COZE_TIMEOUT', 10.0),
        )

    @property
    def headers(self):
        return {
            'Authorization': f'Bearer {self.token}',
            'Content-Type': 'application/json',
        }

    def _call(self, method, path, params=None, payload=None):
        if not self.token or not self.bot_id:
            raise BackendUnavailable('Chat backend is not configured (COZE_PAT / COZE_BOT_ID)')

        url = f'{self.api_base}{path}'
        try:
            response = self.http.request(
                method, url, headers=self.headers, params=params, json=payload, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Coze {method} {path} transport error: {e}")
            raise BackendUnavailable(f'Cannot reach chat backend: {type(e).__name__}') from e

        if response.status_code >= 500:
            logger.warning(f"Coze {method} {path} HTTP {response.status_code}: {response.text[:200]}")
            raise BackendUnavailable(f'Chat backend error (HTTP {response.status_code})')
        if response.status_code >= 400:
            logger.warning(f"Coze {method} {path} HTTP {response.status_code}: {response.text[:200]}")
            raise BackendRejected(f'Chat backend refused the request (HTTP {response.status_code})')

        try:
            body = response.json()
        except ValueError as e:
            raise BackendRejected('Chat backend returned a non-JSON response') from e

        if not isinstance(body, dict) or body.get('code') != 0:
            msg = body.get('msg') if isinstance(body, dict) else None
            raise BackendRejected(f"Coze API error: {msg or 'unknown error'}")
        return body.get('data')

    def submit(self, user_id: str, text: str, conversation_id: Optional[str] = None) -> Submission:
        """Create a chat for one user message. Without a conversation id Coze mints one."""
        params = {'conversation_id': conversation_id} if conversation_id else None
        payload = {
            'bot_id': self.bot_id,
            'user_id': user_id,
            'stream': False,
            'auto_save_history': True,
            'additional_messages': [
                {'role': 'user', 'content': text, 'content_type': 'text'}
            ],
        }
        data = self._call('POST', '/v3/chat', params=params, payload=payload)
        if not isinstance(data, dict) or not data.get('id'):
            raise BackendRejected('Chat backend response is missing the chat id')
        return Submission(
            chat_id=data['id'],
            conversation_id=data.get('conversation_id') or conversation_id,
            status=data.get('status', 'created'),
        )

    def _chat_params(self, submission):
        return {'chat_id': submission.chat_id, 'conversation_id': submission.conversation_id}

    def retrieve(self, submission: Submission) -> str:
        data = self._call('GET', '/v3/chat/retrieve', params=self._chat_params(submission))
        if not isinstance(data, dict) or not data.get('status'):
            raise BackendRejected('Chat status response is missing the status field')
        return data['status']

    def list_messages(self, submission: Submission) -> list:
        data = self._call('GET', '/v3/chat/message/list', params=self._chat_params(submission))
        if not isinstance(data, list):
            raise BackendRejected('Chat message list response is malformed')
        return data
