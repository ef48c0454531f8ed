"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from helpdesk.core.config import Settings


class TestSettings:
    """Tests for Settings loading and validation."""

    def test_defaults(self, monkeypatch):
        """Test defaults when the environment is empty."""
        monkeypatch.delenv("RBAC_CACHE_BACKEND", raising=False)
        settings = Settings(_env_file=None)

        assert settings.rbac_cache_backend == "memory"
        assert settings.rbac_scope_cache_ttl == 60
        assert settings.audit_retention_days == 90
        assert settings.algorithm == "HS256"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("RBAC_SCOPE_CACHE_TTL", "120")
        monkeypatch.setenv("AUDIT_RETENTION_DAYS", "30")

        settings = Settings(_env_file=None)

        assert settings.rbac_scope_cache_ttl == 120
        assert settings.audit_retention_days == 30

    @pytest.mark.parametrize("field,value", [
        ("rbac_scope_cache_ttl", 0),
        ("rbac_scope_cache_ttl", 301),
        ("audit_retention_days", 0),
        ("audit_retention_days", 366),
        ("rbac_cache_backend", "memcached"),
    ])
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_celery_falls_back_to_redis(self):
        """Test broker and backend default to the redis URL."""
        settings = Settings(_env_file=None, redis_url="redis://cache:6379/2")

        assert settings.celery_broker == "redis://cache:6379/2"
        assert settings.celery_backend == "redis://cache:6379/2"

    def test_celery_explicit_broker(self):
        settings = Settings(_env_file=None, celery_broker_url="amqp://broker//")
        assert settings.celery_broker == "amqp://broker//"

    def test_cors_origins_list(self):
        settings = Settings(_env_file=None, cors_origins="http://a.test, http://b.test,")
        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]
