"""Unit tests for core/config.py -- Settings validation.

Covers:
- DEBUG=true without JWT_SIGNING_KEY generates a random key
- Production mode without a key refuses to start
- Keys shorter than 32 characters are rejected in either mode
- BCRYPT_ROUNDS outside 4..31 is rejected
"""

import pytest

from core.config import Settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("DEBUG", "JWT_SIGNING_KEY", "BCRYPT_ROUNDS"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_debug_generates_signing_key(clean_env):
    settings = Settings(_env_file=None, debug=True)
    assert len(settings.jwt_signing_key) >= 32


def test_generated_keys_differ_between_instances(clean_env):
    assert Settings(_env_file=None, debug=True).jwt_signing_key != Settings(_env_file=None, debug=True).jwt_signing_key


def test_production_requires_signing_key(clean_env):
    with pytest.raises(ValueError, match="JWT_SIGNING_KEY is required"):
        Settings(_env_file=None, debug=False)


def test_short_signing_key_rejected(clean_env):
    with pytest.raises(ValueError, match="at least 32"):
        Settings(_env_file=None, debug=True, jwt_signing_key="short")


def test_signing_key_read_from_environment(clean_env):
    clean_env.setenv("JWT_SIGNING_KEY", "k" * 40)
    assert Settings(_env_file=None).jwt_signing_key == "k" * 40


@pytest.mark.parametrize("rounds", [3, 32])
def test_bcrypt_rounds_bounds(clean_env, rounds):
    with pytest.raises(ValueError, match="BCRYPT_ROUNDS"):
        Settings(_env_file=None, debug=True, bcrypt_rounds=rounds)


def test_defaults(clean_env):
    settings = Settings(_env_file=None, debug=True)
    assert settings.jwt_issuer == "rolegate"
    assert settings.jwt_audience == "rolegate-clients"
    assert settings.bcrypt_rounds == 12
    assert settings.database_url.startswith("sqlite:///")
