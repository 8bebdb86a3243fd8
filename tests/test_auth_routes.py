from fakes import ADMIN_PASSWORD, BATCH, HOSPITAL
from medgate import create_app


def test_login_success(login):
    resp = login()
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['success'] is True
    assert body['tokens']['expiresIn'] == 15 * 60 * 1000
    assert body['tokens']['accessToken'] and body['tokens']['refreshToken']


def test_login_trims_and_accepts_camel_case_keys(client):
    resp = client.post('/api/auth/login', json={'hospitalName': f'  {HOSPITAL} ', 'batch': f'{BATCH} '})
    assert resp.status_code == 200


def test_login_not_whitelisted(login):
    resp = login(hospital_name='Unknown Clinic')
    assert resp.status_code == 401
    body = resp.get_json()
    assert body['success'] is False
    assert 'tokens' not in body


def test_login_bad_batch_format(login):
    resp = login(product_batch='ab')
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'invalid_request'


def test_login_missing_fields(client):
    resp = client.post('/api/auth/login', json={})
    assert resp.status_code == 400


def test_me_reports_login_attributes(client, login):
    login()
    body = client.get('/api/auth/me').get_json()
    assert body['hospital_name'] == HOSPITAL
    assert body['product_batch'] == BATCH
    assert body['role'] == 'user'
    assert body['has_conversation'] is False


def test_refresh_rotates_tokens(app, user_tokens, bearer):
    c = app.test_client()
    resp = c.post('/api/auth/refresh', json={'refreshToken': user_tokens['refreshToken']})
    assert resp.status_code == 200
    tokens = resp.get_json()['tokens']
    assert tokens['refreshToken'] != user_tokens['refreshToken']

    me = c.get('/api/auth/me', headers=bearer(tokens['accessToken']))
    assert me.status_code == 200
    assert me.get_json()['hospital_name'] == HOSPITAL


def test_refresh_rejects_access_token(app, user_tokens):
    resp = app.test_client().post('/api/auth/refresh', json={'refresh_token': user_tokens['accessToken']})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'auth_required'


def test_refresh_requires_token(client):
    assert client.post('/api/auth/refresh', json={}).status_code == 400


def test_logout_clears_session(client, login):
    login()
    assert client.get('/api/auth/me').status_code == 200
    assert client.post('/api/auth/logout').get_json() == {'success': True}
    assert client.get('/api/auth/me').status_code == 401


def test_admin_login_and_me(client):
    resp = client.post('/api/auth/admin/login', json={'username': 'admin', 'password': ADMIN_PASSWORD})
    assert resp.status_code == 200
    assert resp.get_json()['tokens']['accessToken']
    body = client.get('/api/auth/me').get_json()
    assert body['role'] == 'admin'
    assert body['username'] == 'admin'


def test_admin_login_wrong_password(client):
    resp = client.post('/api/auth/admin/login', json={'username': 'admin', 'password': 'wrong'})
    assert resp.status_code == 401
    assert client.get('/api/admin/pairs').status_code == 401


def test_admin_login_missing_fields(client):
    assert client.post('/api/auth/admin/login', json={'username': 'admin'}).status_code == 400


def test_admin_logout(client):
    client.post('/api/auth/admin/login', json={'username': 'admin', 'password': ADMIN_PASSWORD})
    assert client.get('/api/admin/pairs').status_code == 200
    client.post('/api/auth/admin/logout')
    assert client.get('/api/admin/pairs').status_code == 401


def test_login_rate_limit(app_config, gateway):
    app = create_app(dict(app_config, LOGIN_RATE_LIMIT=2), gateway=gateway)
    c = app.test_client()
    payload = {'hospital_name': HOSPITAL, 'product_batch': BATCH}
    assert c.post('/api/auth/login', json=payload).status_code == 401
    assert c.post('/api/auth/login', json=payload).status_code == 401
    resp = c.post('/api/auth/login', json=payload)
    assert resp.status_code == 429
    assert resp.get_json()['error'] == 'rate_limited'


def test_rotating_forwarded_for_does_not_reset_the_limit(app_config, gateway):
    app = create_app(dict(app_config, LOGIN_RATE_LIMIT=2), gateway=gateway)
    c = app.test_client()
    payload = {'hospital_name': HOSPITAL, 'product_batch': BATCH}
    codes = [
        c.post('/api/auth/login', json=payload, headers={'X-Forwarded-For': f'10.0.0.{i}'}).status_code
        for i in range(10)
    ]
    assert codes[:2] == [401, 401]
    assert set(codes[2:]) == {429}
    assert len(app.extensions['login_limiter']) == 1


def test_forwarded_for_is_honoured_behind_a_configured_proxy(app_config, gateway):
    app = create_app(dict(app_config, LOGIN_RATE_LIMIT=1, PROXY_FIX_HOPS=1), gateway=gateway)
    c = app.test_client()
    payload = {'hospital_name': HOSPITAL, 'product_batch': BATCH}
    first = c.post('/api/auth/login', json=payload, headers={'X-Forwarded-For': '10.0.0.1'})
    other = c.post('/api/auth/login', json=payload, headers={'X-Forwarded-For': '10.0.0.2'})
    again = c.post('/api/auth/login', json=payload, headers={'X-Forwarded-For': '10.0.0.1'})
    assert (first.status_code, other.status_code, again.status_code) == (401, 401, 429)
