from medgate import create_app
from medgate.session_store import SessionState, SessionStore
from medgate.tokens import ROLE_ADMIN


def make_store(ttl=24 * 3600):
    now = [1000.0]
    return SessionStore(ttl, clock=lambda: now[0]), now


def test_establish_then_read(app):
    store, _ = make_store()
    with app.test_request_context('/'):
        store.establish(SessionState(subject_id='abc', hospital_name='City Hospital', product_batch='BATCH001X'))
        state = store.read()
        assert state.subject_id == 'abc'
        assert state.hospital_name == 'City Hospital'
        assert not state.is_admin
        assert state.expires_at == 1000.0 + 24 * 3600


def test_read_without_session_is_absent(app):
    store, _ = make_store()
    with app.test_request_context('/'):
        assert store.read() is None


def test_session_expires_absolutely(app):
    store, now = make_store(ttl=60)
    with app.test_request_context('/'):
        store.establish(SessionState(subject_id='abc'))
        now[0] += 30
        # updates do not push the expiry out
        store.update(conversation_id='conv-1')
        now[0] += 31
        assert store.read() is None


def test_update_and_clear(app):
    store, _ = make_store()
    with app.test_request_context('/'):
        assert store.update(conversation_id='x') is None
        store.establish(SessionState(subject_id='admin_root', role=ROLE_ADMIN, username='root'))
        assert store.update(conversation_id='conv-9').conversation_id == 'conv-9'
        assert store.read().is_admin
        store.clear()
        assert store.read() is None


def test_malformed_session_payload_is_absent(app):
    store, _ = make_store()
    with app.test_request_context('/'):
        from flask import session
        session[SessionStore.KEY] = {'role': 'user'}
        assert store.read() is None
        session[SessionStore.KEY] = 'garbage'
        assert store.read() is None


def test_tampered_cookie_reads_as_no_session(app):
    client = app.test_client(use_cookies=False)
    resp = client.get('/api/auth/me', headers={'Cookie': 'session=eyJub3QiOiJzaWduZWQifQ.bad.sig'})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'auth_required'


def test_login_sets_httponly_lax_cookie(login):
    resp = login()
    cookie = resp.headers.get('Set-Cookie')
    assert cookie.startswith('session=')
    assert 'HttpOnly' in cookie
    assert 'SameSite=Lax' in cookie


def test_cookie_is_secure_unless_debug(app_config, gateway):
    config = {k: v for k, v in app_config.items() if k != 'SESSION_COOKIE_SECURE'}
    assert create_app(dict(config, DEBUG=False), gateway=gateway).config['SESSION_COOKIE_SECURE'] is True
    assert create_app(dict(config, DEBUG=True), gateway=gateway).config['SESSION_COOKIE_SECURE'] is False
    forced = create_app(dict(config, DEBUG=True, SESSION_COOKIE_SECURE=True), gateway=gateway)
    assert forced.config['SESSION_COOKIE_SECURE'] is True
