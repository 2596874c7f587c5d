"""Tests for the AES-256-GCM credential vault."""

import base64

import pytest

from erpsync.core.vault import CIPHERTEXT_PREFIX, CredentialVault, VaultError, is_ciphertext
from erpsync.models.integration import Integration
from tests.conftest import TEST_ENCRYPTION_KEY


class TestCredentialVault:
    def test_roundtrip(self, vault):
        secret = "s3cr3t-päss"
        ciphertext = vault.encrypt(secret)
        assert ciphertext.startswith(CIPHERTEXT_PREFIX)
        assert secret not in ciphertext
        assert vault.decrypt(ciphertext) == secret

    def test_same_plaintext_gets_fresh_nonce(self, vault):
        assert vault.encrypt("token") != vault.encrypt("token")

    def test_json_roundtrip(self, vault):
        credentials = {"username": "admin", "password": "hunter2", "port": 8069}
        assert vault.decrypt_json(vault.encrypt_json(credentials)) == credentials

    def test_decrypt_json_rejects_non_object(self, vault):
        with pytest.raises(VaultError):
            vault.decrypt_json(vault.encrypt("[1, 2]"))

    def test_optional_helpers(self, vault):
        assert vault.encrypt_optional(None) is None
        assert vault.encrypt_optional("") is None
        assert vault.decrypt_optional(None) is None
        assert vault.decrypt_optional(vault.encrypt_optional("x")) == "x"

    def test_tampered_ciphertext_raises(self, vault):
        raw = bytearray(base64.b64decode(vault.encrypt("payload")[len(CIPHERTEXT_PREFIX) :]))
        raw[-1] ^= 0x01
        tampered = CIPHERTEXT_PREFIX + base64.b64encode(bytes(raw)).decode()
        with pytest.raises(VaultError):
            vault.decrypt(tampered)

    def test_wrong_key_raises(self, vault):
        other = CredentialVault("f" * 64)
        with pytest.raises(VaultError):
            other.decrypt(vault.encrypt("payload"))

    def test_plaintext_is_not_decrypted(self, vault):
        with pytest.raises(VaultError):
            vault.decrypt("hunter2")

    def test_garbage_base64_raises(self, vault):
        with pytest.raises(VaultError):
            vault.decrypt(CIPHERTEXT_PREFIX + "!!!not-base64!!!")

    def test_too_short_raises(self, vault):
        with pytest.raises(VaultError):
            vault.decrypt(CIPHERTEXT_PREFIX + base64.b64encode(b"short").decode())

    @pytest.mark.parametrize("key", ["", "not-hex", "abcd"])
    def test_bad_key_raises(self, key):
        with pytest.raises(VaultError):
            CredentialVault(key)

    def test_key_from_settings(self):
        assert CredentialVault().decrypt(CredentialVault(TEST_ENCRYPTION_KEY).encrypt("a")) == "a"

    def test_is_ciphertext(self, vault):
        assert is_ciphertext(vault.encrypt("x"))
        assert not is_ciphertext("x")
        assert not is_ciphertext(None)


class TestEncryptedColumns:
    def test_plaintext_credentials_rejected(self):
        with pytest.raises(ValueError, match="ciphertext"):
            Integration(credentials_encrypted='{"password": "hunter2"}')

    def test_plaintext_token_rejected(self):
        integration = Integration()
        with pytest.raises(ValueError):
            integration.access_token_encrypted = "raw-token"

    def test_ciphertext_accepted(self, vault):
        integration = Integration(refresh_token_encrypted=vault.encrypt("refresh"))
        assert vault.decrypt(integration.refresh_token_encrypted) == "refresh"

    def test_client_secret_not_allowed_in_oauth_config(self):
        with pytest.raises(ValueError):
            Integration(oauth_config={"client_id": "abc", "client_secret": "shh"})
