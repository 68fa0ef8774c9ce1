"""Unit tests for opaque one-time tokens."""

from datetime import datetime, timedelta, timezone

from authcore.kernel.identity.tokens import (
    TOKEN_BYTES,
    generate_opaque_token,
    hash_token,
    issue_token,
)


def test_opaque_token_entropy():
    token = generate_opaque_token()

    assert len(token) == TOKEN_BYTES * 2
    int(token, 16)


def test_opaque_tokens_unique():
    assert len({generate_opaque_token() for _ in range(200)}) == 200


def test_issue_token_expiry():
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    token = issue_token(timedelta(minutes=60), now=now)

    assert token.expires_at == now + timedelta(minutes=60)
    assert len(token.value) == 64


def test_hash_token_is_stable_and_hides_value():
    token = generate_opaque_token()

    assert hash_token(token) == hash_token(token)
    assert hash_token(token) != token
    assert len(hash_token(token)) == 64
