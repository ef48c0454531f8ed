"""Tests for access token handling."""

import uuid
from datetime import timedelta

from jose import jwt

from helpdesk.core.config import get_settings
from helpdesk.core.security import create_access_token, decode_token


class TestAccessTokens:

    def test_round_trip(self):
        user_id = uuid.uuid4()
        assert decode_token(create_access_token(user_id)) == user_id

    def test_expired_token_rejected(self):
        token = create_access_token(uuid.uuid4(), expires_delta=timedelta(seconds=-5))
        assert decode_token(token) is None

    def test_tampered_token_rejected(self):
        header, payload, _ = create_access_token(uuid.uuid4()).split(".")
        assert decode_token(f"{header}.{payload}.forged") is None

    def test_garbage_rejected(self):
        assert decode_token("not.a.token") is None

    def test_wrong_token_type_rejected(self):
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(uuid.uuid4()), "type": "refresh"},
            settings.secret_key,
            algorithm=settings.algorithm,
        )
        assert decode_token(token) is None

    def test_non_uuid_subject_rejected(self):
        settings = get_settings()
        token = jwt.encode(
            {"sub": "admin", "type": "access"},
            settings.secret_key,
            algorithm=settings.algorithm,
        )
        assert decode_token(token) is None
