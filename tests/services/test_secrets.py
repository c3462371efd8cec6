import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[2]))
import pytest

from twinlink.services import secrets


@pytest.fixture(autouse=True)
def fixed_master_key(monkeypatch):
    monkeypatch.setattr(secrets, "_MASTER_KEY", b"A" * 32)


def test_encrypt_decrypt_roundtrip():
    token = secrets.encrypt("gsk_secret")
    assert token != "gsk_secret"
    assert secrets.decrypt(token) == "gsk_secret"


def test_tokens_are_nonced():
    assert secrets.encrypt("same") != secrets.encrypt("same")


def test_optional_helpers_clear_blank_values():
    assert secrets.encrypt_optional("") is None
    assert secrets.encrypt_optional(None) is None
    assert secrets.decrypt_optional(None) is None
    assert secrets.decrypt_optional(secrets.encrypt_optional("k")) == "k"


def test_undecryptable_token_is_ignored():
    assert secrets.decrypt_optional("not-a-token!") is None
    with pytest.raises(ValueError):
        secrets.decrypt("AAAA")
