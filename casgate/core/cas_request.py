import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, MutableMapping, Optional, Tuple, Union
from xml.parsers.expat import ExpatError

import xmltodict
from starlette.requests import Request

from .responses import element_text, local_name
from .url import URL

logger = logging.getLogger(__name__)

# CAS requires services to accept tickets of up to 32 characters and
# recommends accepting up to 256, "ST-" included.
SERVICE_TICKET_RE = re.compile(r"\AST-\S{1,253}\Z")

# CAS servers post logoutRequest url-encoded; multipart bodies are left unread.
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

PathMatcher = Union[str, re.Pattern]


def _path_info(scope: dict) -> str:
    path = scope.get("path", "/")
    root_path = scope.get("root_path", "")
    if root_path and path.startswith(root_path):
        path = path[len(root_path):] or "/"
    return path


@dataclass
class CASRequest:
    """
    View over one inbound request. All predicates are pure: they
    look at the captured request data and the session, and never do I/O.
    """
    path: str
    method: str
    url: str
    base_url: str
    query_params: dict = field(default_factory=dict)
    form_params: dict = field(default_factory=dict)
    session: MutableMapping[str, Any] = field(default_factory=dict)
    user_agent: str = ""
    client_ip: Optional[str] = None
    requested_with: str = ""
    pgt_callback_path: str = "/pgt_callback"
    logout_path: str = "/logout"

    @classmethod
    def from_request(cls, request: Request, pgt_callback_path: str = "/pgt_callback",
                     logout_path: str = "/logout") -> "CASRequest":
        """
        Capture everything but the body. Call `read_form` once the request is
        known to need CAS processing.
        """
        if "session" not in request.scope:
            raise RuntimeError("CASMiddleware requires SessionMiddleware to be installed outside of it")

        return cls(
            path=_path_info(request.scope),
            method=request.method,
            url=str(request.url),
            base_url=str(request.base_url),
            query_params=dict(request.query_params),
            session=request.session,
            user_agent=request.headers.get("user-agent", ""),
            client_ip=request.client.host if request.client else None,
            requested_with=request.headers.get("x-requested-with", ""),
            pgt_callback_path=pgt_callback_path,
            logout_path=logout_path,
        )

    async def read_form(self, request: Request) -> None:
        content_type = request.headers.get("content-type", "")
        if self.method != "POST" or not content_type.startswith(FORM_CONTENT_TYPE):
            return

        # Cache the raw body first so the wrapped app can read it again
        await request.body()
        form = await request.form()
        self.form_params = {k: v for k, v in form.items() if isinstance(v, str)}

    @property
    def params(self) -> dict:
        merged = dict(self.query_params)
        merged.update(self.form_params)
        return merged

    @property
    def ticket(self) -> Optional[str]:
        if self.single_sign_out:
            return self._sso_ticket()
        if self.ticket_validation:
            return self._ticket_param
        return None

    @property
    def service_url(self) -> str:
        return str(URL.parse(self.url).remove_param("ticket"))

    @property
    def pgt_callback_url(self) -> str:
        return self.base_url.rstrip("/") + self.pgt_callback_path

    @property
    def logout(self) -> bool:
        return self.path == self.logout_path

    @property
    def single_sign_out(self) -> bool:
        return bool(self.params.get("logoutRequest"))

    @property
    def ticket_validation(self) -> bool:
        ticket = self._ticket_param
        return self.method == "GET" and bool(ticket) and bool(SERVICE_TICKET_RE.match(ticket))

    @property
    def pgt_callback(self) -> bool:
        return self.method == "GET" and self.path_matches(self.pgt_callback_path)

    def path_matches(self, matchers: Union[PathMatcher, Iterable[PathMatcher], None]) -> bool:
        if matchers is None:
            return False
        if isinstance(matchers, (str, re.Pattern)):
            matchers = [matchers]

        for matcher in matchers:
            if isinstance(matcher, re.Pattern):
                if matcher.search(self.path):
                    return True
            elif matcher and self.path.startswith(matcher):
                return True
        return False

    @property
    def new_session(self) -> bool:
        if self.guest_param:
            return False
        return not self.session_exists

    @property
    def pgt_params(self) -> Optional[Tuple[str, str]]:
        pgt_iou = self.query_params.get("pgtIou")
        pgt_id = self.query_params.get("pgtId")
        if pgt_iou and pgt_id:
            return pgt_iou, pgt_id
        return None

    @property
    def guest_param(self) -> bool:
        return self.query_params.get("cas") == "guest"

    @property
    def session_exists(self) -> bool:
        return "cas" in self.session or "cas_anonymous" in self.session

    @property
    def client_ip_changed(self) -> bool:
        cas = self.session.get("cas")
        if not cas:
            return False
        return cas.get("client_ip") != self.client_ip

    @property
    def xhr(self) -> bool:
        return self.requested_with.lower() == "xmlhttprequest"

    def user_agent_matches(self, patterns: Iterable[PathMatcher]) -> bool:
        for pattern in patterns:
            if isinstance(pattern, re.Pattern):
                if pattern.search(self.user_agent):
                    return True
            elif pattern and pattern in self.user_agent:
                return True
        return False

    @property
    def _ticket_param(self) -> Optional[str]:
        return self.query_params.get("ticket")

    def _sso_ticket(self) -> Optional[str]:
        try:
            document = xmltodict.parse(self.params["logoutRequest"])
        except (ExpatError, ValueError):
            logger.warning("cas: Ignoring unparseable single-sign-out request body.")
            return None

        root = next(iter(document.values()), None)
        if not isinstance(root, dict):
            return None

        for name, node in root.items():
            if name.startswith(("@", "#")):
                continue
            if "sessionindex" in local_name(name).lower():
                return element_text(node).strip() or None
        return None
