import logging
import time
import uuid

from flask import Blueprint, current_app, jsonify, request

from .auth_gate import login_required
from .errors import ServiceError, ValidationError
from .tokens import open_conversation, seal_conversation

logger = logging.getLogger(__name__)

bp = Blueprint('chat', __name__, url_prefix='/api/chat')

MAX_MESSAGE_CHARS = 4000


def _requested_conversation(data, subject_id):
    """Backend conversation id from a handle this server sealed for subject_id."""
    handle = data.get('conversation_id')
    if handle is None:
        return None
    if not isinstance(handle, str):
        raise ValidationError('conversation_id must be a string')
    conversation_id = open_conversation(current_app.config['SECRET_KEY'], subject_id, handle)
    if conversation_id is None:
        logger.warning(f"Rejected conversation handle not issued to subject={subject_id[:12]}")
        raise ValidationError('Unknown conversation')
    return conversation_id


@bp.route('/send', methods=['POST'])
@login_required
def send_message(identity):
    data = request.get_json(silent=True) or {}
    message = data.get('message')
    if not isinstance(message, str) or not message.strip():
        raise ValidationError('Message content cannot be empty')
    if len(message) > MAX_MESSAGE_CHARS:
        raise ValidationError(f'Message is longer than {MAX_MESSAGE_CHARS} characters')

    sessions = current_app.extensions['session_store']
    state = sessions.read()
    own_session = state is not None and state.subject_id == identity.subject_id
    conversation_id = _requested_conversation(data, identity.subject_id)
    if conversation_id is None and own_session:
        conversation_id = state.conversation_id

    request_id = str(uuid.uuid4())
    start_time = time.time()
    logger.info(f"[chat] start | request_id={request_id} | subject={identity.subject_id[:12]} "
                f"| conversation={conversation_id or 'new'}")

    # WSGI gives no disconnect signal; polling only stops when the server is shutting down
    stopping = current_app.extensions['stopping']
    try:
        with current_app.extensions['dedup'].exclusive(identity.subject_id, request.path, message):
            reply = current_app.extensions['gateway'].send(
                identity.subject_id, message, conversation_id, should_stop=stopping.is_set
            )
    except ServiceError as e:
        elapsed = round(time.time() - start_time, 2)
        logger.warning(f"[chat] failed | request_id={request_id} | {elapsed}s | {e.code}: {e.message}")
        raise

    if own_session and reply.conversation_id:
        sessions.update(conversation_id=reply.conversation_id)

    elapsed = round(time.time() - start_time, 2)
    logger.info(f"[chat] done | request_id={request_id} | {elapsed}s")
    handle = None
    if reply.conversation_id:
        handle = seal_conversation(current_app.config['SECRET_KEY'], identity.subject_id, reply.conversation_id)
    return jsonify({'success': True, 'answer': reply.answer, 'conversation_id': handle})
