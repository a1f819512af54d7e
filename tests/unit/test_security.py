"""Tests for bearer token verification."""

import uuid
from datetime import datetime, timedelta, timezone

from jose import jwt

from modulegate.core.config import get_settings
from modulegate.core.rbac import Actor, ActorRole
from modulegate.core.security import decode_token

from tests.factories import create_user


def _token(claims):
    settings = get_settings()
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


class TestDecodeToken:

    def test_valid_access_token(self):
        user_id = uuid.uuid4()
        assert decode_token(_token({"sub": str(user_id), "type": "access"})) == user_id

    def test_type_defaults_to_access(self):
        user_id = uuid.uuid4()
        assert decode_token(_token({"sub": str(user_id)})) == user_id

    def test_refresh_token_rejected(self):
        assert decode_token(_token({"sub": str(uuid.uuid4()), "type": "refresh"})) is None

    def test_missing_subject(self):
        assert decode_token(_token({"type": "access"})) is None

    def test_subject_not_a_uuid(self):
        assert decode_token(_token({"sub": "not-a-uuid"})) is None

    def test_wrong_signature(self):
        token = jwt.encode({"sub": str(uuid.uuid4())}, "another-secret", algorithm="HS256")
        assert decode_token(token) is None

    def test_expired(self):
        expired = datetime.now(timezone.utc) - timedelta(minutes=5)
        assert decode_token(_token({"sub": str(uuid.uuid4()), "exp": expired})) is None

    def test_garbage(self):
        assert decode_token("not.a.token") is None


class TestActor:

    def test_from_user(self, db_session, tenant):
        user = create_user(db_session, tenant=tenant, role=ActorRole.TENANT_OWNER)

        actor = Actor.from_user(user)

        assert actor.role == ActorRole.TENANT_OWNER
        assert actor.tenant_id == tenant.id
        assert actor.has_tenant
        assert not actor.is_operator

    def test_from_user_unknown_role(self, db_session, tenant):
        user = create_user(db_session, tenant=tenant)
        user.role = "auditor"

        assert Actor.from_user(user) is None
