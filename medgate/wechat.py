import hashlib
import hmac
from urllib.parse import quote

AUTHORIZE_URL = 'https://open.weixin.qq.com/connect/oauth2/authorize'


def verify_signature(token, signature, timestamp, nonce) -> bool:
    """WeChat server check: sha1 of the sorted (token, timestamp, nonce) must equal signature."""
    if not token or not signature or not timestamp or not nonce:
        return False
    joined = ''.join(sorted([token, timestamp, nonce]))
    digest = hashlib.sha1(joined.encode('utf-8')).hexdigest()
    return hmac.compare_digest(digest, signature)


def build_auth_url(app_id, redirect_uri, state=None, scope='snsapi_userinfo'):
    return (
        f"{AUTHORIZE_URL}?appid={app_id}&redirect_uri={quote(redirect_uri, safe='')}"
        f"&response_type=code&scope={scope}&state={state or 'STATE'}#wechat_redirect"
    )
