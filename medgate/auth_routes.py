import logging

from flask import Blueprint, current_app, jsonify, request

from .auth_gate import login_required
from .errors import AuthExpired, AuthRequired, RateLimited, ValidationError
from .session_store import SessionState
from .tokens import EXPIRED, ROLE_ADMIN, ROLE_USER, admin_subject_id, derive_subject_id
from .whitelist import validate_pair

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _client_ip():
    # X-Forwarded-For is only honoured through ProxyFix (PROXY_FIX_HOPS)
    return request.remote_addr or 'unknown'


def _check_login_rate(prefix):
    if not current_app.extensions['login_limiter'].hit(f'{prefix}:{_client_ip()}'):
        logger.warning(f"Login rate limit reached for {_client_ip()}")
        raise RateLimited('Too many login attempts, try again later')


@bp.route('/login', methods=['POST'])
def login():
    _check_login_rate('user')
    data = request.get_json(silent=True) or {}
    hospital_name, product_batch = validate_pair(
        data.get('hospital_name', data.get('hospitalName')),
        data.get('product_batch', data.get('batch')),
    )

    if not current_app.extensions['whitelist'].lookup(hospital_name, product_batch):
        logger.info(f"Login refused, pair not whitelisted: hospital={hospital_name!r}")
        raise AuthRequired('Verification failed, hospital name or product batch is incorrect')

    subject_id = derive_subject_id(hospital_name, product_batch, current_app.config['USER_ID_SALT'])
    pair = current_app.extensions['token_service'].issue(
        subject_id, ROLE_USER, {'hospital_name': hospital_name, 'product_batch': product_batch}
    )
    # Cookie session kept for clients that predate bearer tokens
    current_app.extensions['session_store'].establish(SessionState(
        subject_id=subject_id,
        role=ROLE_USER,
        hospital_name=hospital_name,
        product_batch=product_batch,
    ))
    logger.info(f"User login ok: subject={subject_id[:12]}")

    return jsonify({
        'success': True,
        'message': 'Login successful',
        'tokens': pair.to_dict(),
    })


@bp.route('/me', methods=['GET'])
@login_required
def me(identity):
    state = current_app.extensions['session_store'].read()
    has_conversation = bool(state and state.subject_id == identity.subject_id and state.conversation_id)
    return jsonify({
        'hospital_name': identity.hospital_name,
        'product_batch': identity.product_batch,
        'role': identity.role,
        'username': identity.username,
        'has_conversation': has_conversation,
        'auth_source': identity.source,
    })


@bp.route('/refresh', methods=['POST'])
def refresh():
    data = request.get_json(silent=True) or {}
    refresh_token = data.get('refreshToken') or data.get('refresh_token')
    if not refresh_token:
        raise ValidationError('Missing refresh token')

    result = current_app.extensions['token_service'].refresh(refresh_token)
    if not result:
        if result is EXPIRED:
            raise AuthExpired('Refresh token has expired')
        raise AuthRequired('Refresh token is invalid')

    return jsonify({'success': True, 'tokens': result.to_dict()})


@bp.route('/logout', methods=['POST'])
def logout():
    # Tokens are discarded by the client; only the cookie session is ours to clear
    current_app.extensions['session_store'].clear()
    return jsonify({'success': True})


@bp.route('/admin/login', methods=['POST'])
def admin_login():
    _check_login_rate('admin')
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    if not username or not password:
        raise ValidationError('Username and password are required')

    if not current_app.extensions['whitelist'].verify_admin(username, password):
        logger.info(f"Admin login refused for {username!r}")
        raise AuthRequired('Invalid username or password')

    subject_id = admin_subject_id(username)
    pair = current_app.extensions['token_service'].issue(subject_id, ROLE_ADMIN, {'username': username})
    current_app.extensions['session_store'].establish(SessionState(
        subject_id=subject_id,
        role=ROLE_ADMIN,
        username=username,
    ))
    logger.info(f"Admin login ok: {username}")

    return jsonify({
        'success': True,
        'message': 'Login successful',
        'tokens': pair.to_dict(),
    })


@bp.route('/admin/logout', methods=['POST'])
def admin_logout():
    current_app.extensions['session_store'].clear()
    return jsonify({'success': True})
