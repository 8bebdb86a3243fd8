import sys
from pathlib import Path

import pytest

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from fakes import (  # noqa: E402
    ACCESS_SECRET, ADMIN_PASSWORD, BATCH, HOSPITAL, REFRESH_SECRET, FakeClock, ScriptedCozeClient,
)
from medgate import create_app  # noqa: E402
from medgate.gateway import ConversationGateway  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def coze_client():
    return ScriptedCozeClient()


@pytest.fixture
def gateway(coze_client, clock):
    return ConversationGateway(coze_client, sleep=clock.sleep, clock=clock)


@pytest.fixture
def app_config(tmp_path):
    return {
        'TESTING': True,
        'SECRET_KEY': 'test-session-secret',
        # the test client talks plain http
        'SESSION_COOKIE_SECURE': False,
        'JWT_ACCESS_SECRET': ACCESS_SECRET,
        'JWT_REFRESH_SECRET': REFRESH_SECRET,
        'DB_PATH': str(tmp_path / 'test.sqlite'),
        'ADMIN_PASSWORD': ADMIN_PASSWORD,
        'BCRYPT_ROUNDS': 4,
        'LOGIN_RATE_LIMIT': 1000,
    }


@pytest.fixture
def app(app_config, gateway):
    app = create_app(app_config, gateway=gateway)
    app.extensions['whitelist'].create(HOSPITAL, BATCH)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(hospital_name=HOSPITAL, product_batch=BATCH, test_client=None):
        c = test_client or client
        return c.post('/api/auth/login', json={'hospital_name': hospital_name, 'product_batch': product_batch})
    return _login


@pytest.fixture
def user_tokens(login):
    resp = login()
    assert resp.status_code == 200
    return resp.get_json()['tokens']


@pytest.fixture
def admin_tokens(app):
    c = app.test_client()
    resp = c.post('/api/auth/admin/login', json={'username': 'admin', 'password': ADMIN_PASSWORD})
    assert resp.status_code == 200
    return resp.get_json()['tokens']


@pytest.fixture
def bearer():
    def _make(token):
        return {'Authorization': f'Bearer {token}'}
    return _make
