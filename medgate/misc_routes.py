import logging

from flask import Blueprint, current_app, jsonify, request

from . import __version__
from .errors import ValidationError
from .wechat import build_auth_url, verify_signature

logger = logging.getLogger(__name__)

bp = Blueprint('misc', __name__, url_prefix='/api')


@bp.route('/status', methods=['GET'])
def status():
    return jsonify({
        'message': 'Hospital chat gateway',
        'version': __version__,
        'status': 'running',
        'endpoints': {
            'auth': '/api/auth',
            'admin': '/api/admin',
            'chat': '/api/chat',
        },
    })


@bp.route('/wechat/verify', methods=['GET'])
def wechat_verify():
    ok = verify_signature(
        current_app.config.get('WECHAT_TOKEN'),
        request.args.get('signature'),
        request.args.get('timestamp'),
        request.args.get('nonce'),
    )
    if not ok:
        logger.warning('WeChat server verification failed')
        return 'verification failed', 403
    return request.args.get('echostr', '')


@bp.route('/wechat/auth-url', methods=['GET'])
def wechat_auth_url():
    redirect_uri = request.args.get('redirect_uri')
    if not redirect_uri:
        raise ValidationError('Missing redirect_uri parameter')
    url = build_auth_url(current_app.config.get('WECHAT_APP_ID', ''), redirect_uri, request.args.get('state'))
    return jsonify({'authUrl': url})
