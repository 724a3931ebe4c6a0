from datetime import timedelta

from pydantic import SecretStr

from src.auth.jwt import create_access_token, decode_access_token


def test_jwt_encode_decode(settings):
    token = create_access_token({"sub": "user1", "email": "a@example.com"}, settings, expires_delta=timedelta(minutes=5))
    data = decode_access_token(token, settings)
    assert data is not None
    assert data.sub == "user1"
    assert data.email == "a@example.com"


def test_expired_token_is_rejected(settings):
    token = create_access_token({"sub": "user1"}, settings, expires_delta=timedelta(minutes=-1))
    assert decode_access_token(token, settings) is None


def test_token_without_subject_is_rejected(settings):
    token = create_access_token({"email": "a@example.com"}, settings)
    assert decode_access_token(token, settings) is None


def test_token_signed_with_other_key_is_rejected(settings):
    other = settings.model_copy(update={"secret_key": SecretStr("another-secret-key-that-is-long-enough")})
    token = create_access_token({"sub": "user1"}, other)
    assert decode_access_token(token, settings) is None
