"""Whitelist-gated login and chat gateway in front of a Coze bot."""
import logging
import threading

from flask import Flask
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

__version__ = '1.0.0'

logger = logging.getLogger(__name__)


def create_app(overrides=None, gateway=None):
    """
    Build the Flask app. `overrides` is layered over Config; `gateway` replaces
    the Coze-backed ConversationGateway (tests pass a scripted one).
    """
    from .config import Config, check_secrets
    from .auth_gate import AuthGate, BearerExtractor, SessionExtractor
    from .coze import CozeClient
    from .dedup import RequestDeduplicator
    from .errors import register_error_handlers
    from .gateway import ConversationGateway
    from .metrics import RequestMetrics
    from .ratelimit import FixedWindowLimiter
    from .session_store import SessionStore
    from .tokens import TokenService
    from .whitelist import WhitelistStore
    from . import admin_routes, auth_routes, chat_routes, misc_routes

    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    app.config['PERMANENT_SESSION_LIFETIME'] = app.config['SESSION_TTL']
    if app.config.get('SESSION_COOKIE_SECURE') is None:
        app.config['SESSION_COOKIE_SECURE'] = not app.config['DEBUG']
    check_secrets(app.config)

    CORS(app, origins=app.config['CORS_ORIGINS'], supports_credentials=True)
    hops = app.config['PROXY_FIX_HOPS']
    if hops:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=hops, x_proto=hops)

    token_service = TokenService.from_config(app.config)
    session_store = SessionStore(app.config['SESSION_TTL'].total_seconds())
    whitelist = WhitelistStore(app.config['DB_PATH'], bcrypt_rounds=app.config['BCRYPT_ROUNDS'])
    whitelist.ensure_default_admin(app.config.get('ADMIN_PASSWORD'))

    if gateway is None:
        if not app.config.get('COZE_PAT') or not app.config.get('COZE_BOT_ID'):
            logger.warning('COZE_PAT / COZE_BOT_ID not set, chat requests will fail')
        gateway = ConversationGateway(
            CozeClient.from_config(app.config),
            total_budget=app.config['CHAT_TOTAL_BUDGET'],
        )

    metrics = RequestMetrics(app.config['METRICS_MAX_ENTRIES'], app.config['SLOW_REQUEST_MS'])
    metrics.init_app(app)

    app.extensions.update({
        'token_service': token_service,
        'session_store': session_store,
        # bearer first; the cookie session is the fallback
        'auth_gate': AuthGate([BearerExtractor(token_service), SessionExtractor(session_store)]),
        'whitelist': whitelist,
        'gateway': gateway,
        'dedup': RequestDeduplicator(app.config['DEDUP_COOLDOWN_SEC'], app.config['DEDUP_RETENTION_SEC']),
        'login_limiter': FixedWindowLimiter(app.config['LOGIN_RATE_LIMIT'], app.config['LOGIN_RATE_WINDOW_SEC']),
        'metrics': metrics,
        # set on shutdown; in-flight chat polling checks it between attempts
        'stopping': threading.Event(),
    })

    register_error_handlers(app)
    app.register_blueprint(auth_routes.bp)
    app.register_blueprint(chat_routes.bp)
    app.register_blueprint(admin_routes.bp)
    app.register_blueprint(admin_routes.perf_bp)
    app.register_blueprint(misc_routes.bp)

    return app
