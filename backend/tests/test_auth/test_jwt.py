"""Unit tests for JWT token creation, decoding, and validation."""

import uuid
from datetime import timedelta

import pytest
from jose import JWTError, jwt

from app.auth.jwt import (
    create_access_token,
    create_refresh_token,
    create_token_pair,
    decode_token,
)


class TestTokenClaims:
    """Access and refresh tokens carry sub, type, iat, and exp."""

    @pytest.mark.parametrize(
        ("factory", "token_type"),
        [(create_access_token, "access"), (create_refresh_token, "refresh")],
    )
    def test_claims(self, factory, token_type):
        user_id = str(uuid.uuid4())
        payload = decode_token(factory({"sub": user_id}))
        assert payload["sub"] == user_id
        assert payload["type"] == token_type
        assert {"iat", "exp"} <= payload.keys()

    def test_refresh_outlives_access(self):
        access = decode_token(create_access_token({"sub": "u"}))
        refresh = decode_token(create_refresh_token({"sub": "u"}))
        assert refresh["exp"] > access["exp"]

    def test_input_dict_not_mutated(self):
        data = {"sub": "user-123"}
        create_access_token(data)
        assert data == {"sub": "user-123"}


class TestDecodeToken:
    """Test token decoding and validation."""

    def test_decode_expired_token_raises(self):
        token = create_access_token({"sub": "user-123"}, expires_delta=timedelta(seconds=-1))
        with pytest.raises(JWTError):
            decode_token(token)

    @pytest.mark.parametrize("token", ["not.a.valid.token", ""])
    def test_decode_garbage_raises(self, token):
        with pytest.raises(JWTError):
            decode_token(token)

    def test_decode_foreign_signature_raises(self):
        token = jwt.encode({"sub": "user-123", "type": "access"}, "some-other-secret", algorithm="HS256")
        with pytest.raises(JWTError):
            decode_token(token)


class TestCreateTokenPair:
    def test_pair_types(self):
        user_id = str(uuid.uuid4())
        pair = create_token_pair(user_id)
        assert pair["token_type"] == "bearer"
        assert decode_token(pair["access_token"])["type"] == "access"
        assert decode_token(pair["refresh_token"])["type"] == "refresh"
        assert decode_token(pair["refresh_token"])["sub"] == user_id
