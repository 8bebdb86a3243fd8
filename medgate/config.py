import os
from datetime import timedelta

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_list(name, default):
    raw = os.getenv(name)
    if not raw:
        return default
    return [item.strip() for item in raw.split(',') if item.strip()]


def _env_bool(name):
    raw = os.getenv(name)
    if raw is None or raw == '':
        return None
    return raw.lower() in ('1', 'true', 'yes')


class Config:
    """
    All configurable parameters grouped here. Values come from the environment
    (or .env) and can be overridden per app through create_app(overrides).
    """
    # Server
    SERVER_HOST = os.getenv('HOST', '0.0.0.0')
    SERVER_PORT = int(os.getenv('PORT', '3001'))
    DEBUG = os.getenv('FLASK_DEBUG', 'false').lower() in ('1', 'true', 'yes')

    # Session cookie (signed by Flask)
    SECRET_KEY = os.getenv('SESSION_SECRET')
    SESSION_COOKIE_NAME = 'session'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    # None means "secure unless DEBUG", resolved in create_app
    SESSION_COOKIE_SECURE = _env_bool('SESSION_COOKIE_SECURE')
    SESSION_REFRESH_EACH_REQUEST = False
    SESSION_TTL = timedelta(hours=24)
    PERMANENT_SESSION_LIFETIME = SESSION_TTL

    # JWT
    JWT_ACCESS_SECRET = os.getenv('JWT_ACCESS_SECRET')
    JWT_REFRESH_SECRET = os.getenv('JWT_REFRESH_SECRET')
    JWT_ACCESS_EXPIRY = os.getenv('JWT_ACCESS_EXPIRY', '15m')
    JWT_REFRESH_EXPIRY = os.getenv('JWT_REFRESH_EXPIRY', '7d')
    JWT_ISSUER = 'hospital-login-system'
    JWT_AUDIENCE = 'hospital-users'
    USER_ID_SALT = os.getenv('USER_ID_SALT', 'default-salt-for-user-id-generation')

    # Coze backend
    COZE_API_BASE = os.getenv('COZE_API_BASE', 'https://api.coze.cn')
    COZE_PAT = os.getenv('COZE_PAT')
    COZE_BOT_ID = os.getenv('COZE_BOT_ID')
    COZE_TIMEOUT = float(os.getenv('COZE_TIMEOUT', '10'))
    CHAT_TOTAL_BUDGET = float(os.getenv('CHAT_TOTAL_BUDGET', '60'))

    # Whitelist / admin store
    DB_PATH = os.getenv('DB_PATH', os.path.join('data', 'database.sqlite'))
    ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD')
    BCRYPT_ROUNDS = int(os.getenv('BCRYPT_ROUNDS', '12'))

    # Rate limiting
    LOGIN_RATE_LIMIT = int(os.getenv('LOGIN_RATE_LIMIT', '20'))
    LOGIN_RATE_WINDOW_SEC = int(os.getenv('LOGIN_RATE_WINDOW_SEC', '60'))

    # Duplicate chat submissions
    DEDUP_COOLDOWN_SEC = float(os.getenv('DEDUP_COOLDOWN_SEC', '1'))
    DEDUP_RETENTION_SEC = 5 * 60

    # Request timing
    METRICS_MAX_ENTRIES = 1000
    SLOW_REQUEST_MS = 1000

    # Number of trusted reverse proxies in front of the app; 0 ignores X-Forwarded-For
    PROXY_FIX_HOPS = int(os.getenv('PROXY_FIX_HOPS', '0'))

    # CORS
    CORS_ORIGINS = _env_list('CORS_ORIGINS', ['http://localhost:5173', 'http://localhost:5174'])

    # WeChat
    WECHAT_APP_ID = os.getenv('WECHAT_APP_ID', '')
    WECHAT_TOKEN = os.getenv('WECHAT_TOKEN', '')


REQUIRED_SECRETS = ('SECRET_KEY', 'JWT_ACCESS_SECRET', 'JWT_REFRESH_SECRET')


def check_secrets(config):
    """Refuse to start without signing keys; access and refresh keys must differ."""
    missing = [key for key in REQUIRED_SECRETS if not config.get(key)]
    if missing:
        raise RuntimeError(f"Missing required configuration: {', '.join(missing)}")
    if config['JWT_ACCESS_SECRET'] == config['JWT_REFRESH_SECRET']:
        raise RuntimeError('JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be different')
