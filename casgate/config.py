import os
import re
from typing import Callable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .core.session_store import CASSessionStore
from .core.ticket_store import InMemoryPGTStore, PGTStore
from .core.url import URL

# Crawlers never complete a gateway round trip, so they are not redirected.
DEFAULT_GATEWAY_SKIP_USER_AGENTS = [
    "Googlebot",
    "Baiduspider",
    "Bingbot",
    "Yahoo!",
    "iaskspider",
    "facebookexternalhit",
    "Twitterbot",
    "LinkedInBot",
    "Google (+https://developers.google.com/+/web/snippet/)",
    "Pinterest",
]


def _as_list(value):
    if value is None:
        return []
    if isinstance(value, (str, re.Pattern)):
        return [value]
    return list(value)


def _env_list(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


class CASConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    server_url: str
    session_store: Optional[CASSessionStore] = None
    exclude_paths: List[Union[str, re.Pattern]] = []
    gateway_mode: bool = False
    proxy_service_url: Optional[str] = None
    extra_attributes_filter: Optional[List[str]] = None
    ticket_store: Callable[[], PGTStore] = InMemoryPGTStore
    pgt_callback_path: str = "/pgt_callback"
    logout_path: str = "/logout"
    gateway_skip_user_agents: List[Union[str, re.Pattern]] = DEFAULT_GATEWAY_SKIP_USER_AGENTS
    reset_session_on_ip_change: bool = False
    timeout: Optional[float] = None
    verify_ssl: bool = True

    @model_validator(mode="before")
    @classmethod
    def merge_exclude_path(cls, data):
        if isinstance(data, dict) and "exclude_path" in data:
            data = dict(data)
            exclude_path = data.pop("exclude_path")
            if not data.get("exclude_paths"):
                data["exclude_paths"] = exclude_path
        return data

    @field_validator("server_url")
    @classmethod
    def check_server_url(cls, value: str) -> str:
        URL.parse(value)
        return value

    @field_validator("session_store", mode="before")
    @classmethod
    def check_session_store(cls, value):
        if value is not None and not isinstance(value, CASSessionStore):
            raise ValueError("session_store does not support single-sign-out")
        return value

    @field_validator("exclude_paths", "gateway_skip_user_agents", mode="before")
    @classmethod
    def listify(cls, value):
        return _as_list(value)

    @field_validator("extra_attributes_filter", mode="before")
    @classmethod
    def stringify_filter(cls, value):
        if value is None:
            return None
        return [str(name) for name in _as_list(value)]

    @classmethod
    def from_env(cls, **overrides) -> "CASConfig":
        """
        Build a config from CAS_* environment variables. Keyword arguments
        take precedence over the environment.
        """
        settings = {
            "server_url": os.environ.get("CAS_SERVER_URL"),
            "gateway_mode": os.environ.get("CAS_GATEWAY_MODE", "false").lower() in ("1", "true", "yes"),
            "proxy_service_url": os.environ.get("CAS_PROXY_SERVICE_URL") or None,
            "exclude_paths": _env_list(os.environ.get("CAS_EXCLUDE_PATHS")),
            "extra_attributes_filter": _env_list(os.environ.get("CAS_EXTRA_ATTRIBUTES_FILTER")),
        }
        settings.update(overrides)
        return cls(**settings)
