import time

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from quizvault.core import auth as auth_module
from quizvault.core.auth import decode_token
from quizvault.core.config import settings
from quizvault.core.errors import UnauthorizedError

ISSUER = "https://idp.example.com/pool"
AUDIENCE = "quizvault-web"


class FakeSigningKey:
    def __init__(self, key):
        self.key = key


class FakeJwksClient:
    def __init__(self, public_key):
        self.public_key = public_key
        self.tokens = []

    def get_signing_key_from_jwt(self, token):
        self.tokens.append(token)
        return FakeSigningKey(self.public_key)


@pytest.fixture()
def private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture()
def jwks(monkeypatch, private_key):
    fake = FakeJwksClient(private_key.public_key())
    monkeypatch.setattr(settings, "AUTH_JWKS_URL", "https://idp.example.com/pool/.well-known/jwks.json")
    monkeypatch.setattr(settings, "AUTH_ISSUER", ISSUER)
    monkeypatch.setattr(settings, "AUTH_AUDIENCE", AUDIENCE)
    monkeypatch.setattr(settings, "AUTH_ALGORITHMS", ["RS256"])
    monkeypatch.setattr(auth_module, "_jwks_client", fake)
    return fake


def sign(private_key, **overrides):
    now = int(time.time())
    claims = {"sub": "idp-user-1", "email": "idp@example.com", "name": "Idp User", "iss": ISSUER, "aud": AUDIENCE,
              "iat": now, "exp": now + 600, "cognito:groups": ["admins"]}
    claims.update(overrides)
    return jwt.encode(claims, private_key, algorithm="RS256", headers={"kid": "test-key"})


def test_identity_provider_token_is_accepted(client, jwks, private_key):
    token = sign(private_key)
    claims = decode_token(token)
    assert claims["sub"] == "idp-user-1"
    assert jwks.tokens == [token]

    me = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200, me.text
    assert me.json()["subject"] == "idp-user-1"
    assert me.json()["is_admin"] is True


def test_wrong_issuer_is_rejected(client, jwks, private_key):
    token = sign(private_key, iss="https://evil.example.com")
    with pytest.raises(UnauthorizedError):
        decode_token(token)
    r = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "Auth.Unauthorized"


def test_wrong_audience_is_rejected(client, jwks, private_key):
    token = sign(private_key, aud="someone-else")
    with pytest.raises(UnauthorizedError):
        decode_token(token)
    assert client.get("/users/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_local_secret_tokens_are_refused_when_jwks_is_configured(client, jwks):
    token = auth_module.create_token("local-user")
    assert client.get("/users/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401
