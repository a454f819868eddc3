import re

import pytest
from pydantic import ValidationError

from casgate.config import CASConfig, DEFAULT_GATEWAY_SKIP_USER_AGENTS
from casgate.core.session_store import InMemorySessionStore
from casgate.core.ticket_store import InMemoryPGTStore

def test_defaults():
    config = CASConfig(server_url="https://cas.example.com/cas")
    assert config.exclude_paths == []
    assert config.gateway_mode is False
    assert config.pgt_callback_path == "/pgt_callback"
    assert config.logout_path == "/logout"
    assert config.gateway_skip_user_agents == DEFAULT_GATEWAY_SKIP_USER_AGENTS
    assert isinstance(config.ticket_store(), InMemoryPGTStore)

def test_server_url_is_required():
    with pytest.raises(ValidationError):
        CASConfig()
    with pytest.raises(ValidationError):
        CASConfig(server_url="cas.example.com")

def test_exclude_path_alias():
    pattern = re.compile(r"^/assets/")
    config = CASConfig(server_url="https://cas.example.com", exclude_path=pattern)
    assert config.exclude_paths == [pattern]

    config = CASConfig(server_url="https://cas.example.com", exclude_path="/health", exclude_paths=["/api"])
    assert config.exclude_paths == ["/api"]

def test_session_store_must_support_single_sign_out():
    class NotAStore:
        def clear(self):
            pass

    with pytest.raises(ValidationError) as excinfo:
        CASConfig(server_url="https://cas.example.com", session_store=NotAStore())
    assert "does not support single-sign-out" in str(excinfo.value)

    store = InMemorySessionStore()
    assert CASConfig(server_url="https://cas.example.com", session_store=store).session_store is store

def test_extra_attributes_filter_is_listified():
    config = CASConfig(server_url="https://cas.example.com", extra_attributes_filter="role")
    assert config.extra_attributes_filter == ["role"]

def test_from_env(monkeypatch):
    monkeypatch.setenv("CAS_SERVER_URL", "https://sso.example.org/cas")
    monkeypatch.setenv("CAS_GATEWAY_MODE", "true")
    monkeypatch.setenv("CAS_EXCLUDE_PATHS", "/health, /static")
    monkeypatch.setenv("CAS_EXTRA_ATTRIBUTES_FILTER", "role,email")

    config = CASConfig.from_env(proxy_service_url="https://backend.example.org")
    assert config.server_url == "https://sso.example.org/cas"
    assert config.gateway_mode is True
    assert config.exclude_paths == ["/health", "/static"]
    assert config.extra_attributes_filter == ["role", "email"]
    assert config.proxy_service_url == "https://backend.example.org"
