"""Tests for password hashing, tokens, API keys and credential encryption"""

import pytest

from app.security_utils import (
    API_KEY_PREFIX,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    decrypt_credentials,
    encrypt_credentials,
    generate_api_key,
    generate_verification_code,
    hash_password,
    hash_token,
    mask_sensitive_data,
    sanitize_html,
    split_api_key,
    verify_password,
)
from app.webhook_security import create_webhook_signature, verify_webhook_signature


@pytest.mark.unit
class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("s3nha-forte")
        assert hashed.startswith("$argon2")
        assert verify_password("s3nha-forte", hashed)
        assert not verify_password("outra-senha", hashed)

    def test_garbage_hash_does_not_raise(self):
        assert verify_password("s3nha-forte", "not-a-hash") is False

    def test_verification_code(self):
        code = generate_verification_code()
        assert len(code) == 6
        assert code.isdigit()


@pytest.mark.unit
class TestTokens:
    def test_access_token(self):
        token = create_access_token("user-1", "tenant-1", "OWNER", "ana@studiobella.com")
        payload = decode_access_token(token)
        assert payload["sub"] == "user-1"
        assert payload["tenantId"] == "tenant-1"
        assert payload["role"] == "OWNER"

    def test_refresh_token_uses_its_own_secret(self):
        token, jti, expires_at = create_refresh_token("user-1", "tenant-1")
        assert decode_refresh_token(token)["jti"] == jti
        assert decode_access_token(token) is None

    def test_access_token_is_not_a_refresh_token(self):
        token = create_access_token("user-1", "tenant-1", "OWNER", "ana@studiobella.com")
        assert decode_refresh_token(token) is None

    def test_invalid_token(self):
        assert decode_access_token("not-a-jwt") is None


@pytest.mark.unit
class TestApiKeys:
    def test_generate_and_split(self):
        full_key, prefix, key_hash = generate_api_key()
        assert full_key.startswith(API_KEY_PREFIX)
        assert split_api_key(full_key) == (prefix, key_hash)

    @pytest.mark.parametrize("presented", ["", "sk_live_abcdefgh", f"{API_KEY_PREFIX}short"])
    def test_malformed_keys(self, presented):
        assert split_api_key(presented) is None

    def test_hash_token_is_stable(self):
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != hash_token("abd")


@pytest.mark.unit
class TestCredentialsAndSanitizing:
    def test_credentials_round_trip(self):
        encrypted = encrypt_credentials({"access_token": "EAAG-secret"})
        assert "EAAG-secret" not in encrypted
        assert decrypt_credentials(encrypted) == {"access_token": "EAAG-secret"}

    def test_empty_credentials(self):
        assert decrypt_credentials(None) == {}

    def test_tampered_credentials(self):
        with pytest.raises(ValueError):
            decrypt_credentials("definitely-not-fernet")

    def test_mask(self):
        assert mask_sensitive_data("1234567890") == "******7890"
        assert mask_sensitive_data("abc") == "***"

    def test_sanitize_html_strips_scripts(self):
        cleaned = sanitize_html('<p onclick="x()">Olá <script>alert(1)</script><strong>Maria</strong></p>')
        assert "<script>" not in cleaned
        assert "onclick" not in cleaned
        assert "<strong>Maria</strong>" in cleaned


@pytest.mark.unit
class TestWebhookSignatures:
    def test_sign_and_verify(self):
        body = b'{"event":"appointment.created"}'
        signature = create_webhook_signature("whsec-test", body)
        assert signature.startswith("sha256=")
        assert verify_webhook_signature("whsec-test", body, signature)
        assert not verify_webhook_signature("whsec-test", body + b" ", signature)
        assert not verify_webhook_signature("outro", body, signature)

    def test_missing_prefix(self):
        assert not verify_webhook_signature("whsec-test", b"{}", "abc123")
