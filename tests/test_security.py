from types import SimpleNamespace

import pytest

import security
from errors import AuthenticationError
from security import (
    generate_access_token,
    hash_password,
    read_access_token,
    verify_password,
)


def test_password_hash_round_trip():
    hashed = hash_password("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong-pass", hashed)


def test_access_token_carries_user_id():
    assert read_access_token(generate_access_token(42)) == 42


def test_tampered_token_is_rejected():
    token = generate_access_token(7)
    with pytest.raises(AuthenticationError):
        read_access_token(token[:-2] + ("AA" if not token.endswith("AA") else "BB"))


def test_token_signed_with_other_secret_is_rejected(monkeypatch):
    token = generate_access_token(7)
    monkeypatch.setattr(
        security,
        "get_settings",
        lambda: SimpleNamespace(token_secret="another-secret", token_ttl_hours=1),
    )
    with pytest.raises(AuthenticationError):
        read_access_token(token)


def test_expired_token_is_rejected(monkeypatch):
    monkeypatch.setattr(
        security,
        "get_settings",
        lambda: SimpleNamespace(token_secret="test-secret", token_ttl_hours=-1),
    )
    token = generate_access_token(7)
    with pytest.raises(AuthenticationError) as exc:
        read_access_token(token)
    assert exc.value.message == "Session expired"


def test_tokens_are_not_signed_without_a_secret(monkeypatch):
    monkeypatch.setattr(
        security,
        "get_settings",
        lambda: SimpleNamespace(token_secret="", token_ttl_hours=1),
    )
    with pytest.raises(RuntimeError):
        generate_access_token(7)


def test_missing_secret_env_leaves_settings_empty(monkeypatch):
    from config import get_settings

    monkeypatch.delenv("GASTOS_TOKEN_SECRET", raising=False)
    get_settings.cache_clear()
    try:
        assert get_settings().token_secret == ""
    finally:
        get_settings.cache_clear()
