import hashlib

import pytest

from fakes import ACCESS_SECRET
from medgate import create_app
from medgate.config import check_secrets
from medgate.wechat import build_auth_url, verify_signature


def sign(token, timestamp, nonce):
    return hashlib.sha1(''.join(sorted([token, timestamp, nonce])).encode('utf-8')).hexdigest()


def test_status(client):
    body = client.get('/api/status').get_json()
    assert body['status'] == 'running'
    assert body['endpoints']['chat'] == '/api/chat'


def test_unknown_route_is_json_404(client):
    resp = client.get('/api/nope')
    assert resp.status_code == 404
    assert resp.get_json()['success'] is False


def test_verify_signature():
    assert verify_signature('tok', sign('tok', '123', 'abc'), '123', 'abc')
    assert not verify_signature('tok', 'deadbeef', '123', 'abc')
    assert not verify_signature('', sign('', '123', 'abc'), '123', 'abc')


def test_wechat_verify_route(app_config, gateway):
    app = create_app(dict(app_config, WECHAT_TOKEN='wx-token'), gateway=gateway)
    c = app.test_client()
    query = {'signature': sign('wx-token', '1700000000', 'n0nce'), 'timestamp': '1700000000',
             'nonce': 'n0nce', 'echostr': 'echo-me'}
    resp = c.get('/api/wechat/verify', query_string=query)
    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == 'echo-me'

    query['signature'] = 'forged'
    assert c.get('/api/wechat/verify', query_string=query).status_code == 403


def test_auth_url(app_config, gateway):
    app = create_app(dict(app_config, WECHAT_APP_ID='wx123'), gateway=gateway)
    c = app.test_client()
    resp = c.get('/api/wechat/auth-url', query_string={'redirect_uri': 'https://h.example/cb?x=1'})
    url = resp.get_json()['authUrl']
    assert url == build_auth_url('wx123', 'https://h.example/cb?x=1')
    assert 'appid=wx123' in url
    assert 'redirect_uri=https%3A%2F%2Fh.example%2Fcb%3Fx%3D1' in url
    assert url.endswith('#wechat_redirect')
    assert c.get('/api/wechat/auth-url').status_code == 400


@pytest.mark.parametrize('overrides', [
    {'SECRET_KEY': None},
    {'JWT_ACCESS_SECRET': ''},
    {'JWT_REFRESH_SECRET': ACCESS_SECRET},
])
def test_startup_refuses_bad_secrets(app_config, overrides):
    with pytest.raises(RuntimeError):
        check_secrets(dict(app_config, **overrides))
