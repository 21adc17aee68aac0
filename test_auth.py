import pytest
from unittest.mock import MagicMock
from cryptography.fernet import Fernet
from modules.auth import encrypt_data, decrypt_data, hash_password, verify_admin_password, admin_login


@pytest.fixture
def fernet_key(monkeypatch):
    monkeypatch.setenv("FERNET_KEY", Fernet.generate_key().decode())


def test_encrypt_decrypt(fernet_key):
    token = encrypt_data("TX1234567")
    assert token != "TX1234567"
    assert decrypt_data(token) == "TX1234567"


def test_encrypt_without_key(monkeypatch):
    monkeypatch.delenv("FERNET_KEY", raising=False)
    with pytest.raises(RuntimeError):
        encrypt_data("TX1234567")


def test_admin_password(monkeypatch):
    monkeypatch.setattr("config.ADMIN_PASSWORD_HASH", hash_password("correct horse"))
    assert verify_admin_password("correct horse") is True
    assert verify_admin_password("wrong") is False
    assert verify_admin_password("") is False


def test_admin_password_not_configured(monkeypatch):
    monkeypatch.setattr("config.ADMIN_PASSWORD_HASH", None)
    assert verify_admin_password("anything") is False


def test_admin_password_with_malformed_hash(monkeypatch):
    monkeypatch.setattr("config.ADMIN_PASSWORD_HASH", "not-a-bcrypt-hash")
    assert verify_admin_password("anything") is False


def test_admin_login_remembers_session(monkeypatch):
    monkeypatch.setattr("streamlit.session_state", {"admin_authenticated": True})
    assert admin_login() is True


def test_admin_login_rejects_wrong_password(monkeypatch):
    monkeypatch.setattr("config.ADMIN_PASSWORD_HASH", hash_password("correct horse"))
    monkeypatch.setattr("streamlit.session_state", {})
    monkeypatch.setattr("streamlit.form", lambda key: MagicMock())
    monkeypatch.setattr("streamlit.text_input", lambda label, type=None: "wrong")
    monkeypatch.setattr("streamlit.form_submit_button", lambda label: True)
    monkeypatch.setattr("streamlit.subheader", MagicMock())
    error = MagicMock()
    monkeypatch.setattr("streamlit.error", error)

    assert admin_login() is False
    error.assert_called_once_with("Incorrect password.")
