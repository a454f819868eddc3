"""
CAS Middleware for FastAPI/Starlette applications

Intercepts the CAS protocol requests (ticket validation, PGT callback, logout,
single sign-out, gateway round trips) and turns 401 responses from the
wrapped application into a redirect to the CAS login page.

Usage:
    from casgate.middleware import CASMiddleware
    from starlette.middleware.sessions import SessionMiddleware

    app.add_middleware(CASMiddleware, server_url="https://cas.example.com/cas")
    app.add_middleware(SessionMiddleware, secret_key=settings.SECRET_KEY)

SessionMiddleware must be added last so that it wraps CASMiddleware.
"""
import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from .config import CASConfig
from .core.cas_client import CASClient
from .core.cas_request import CASRequest
from .core.responses import FailureCode
from .core.url import URL

logger = logging.getLogger(__name__)


def redirect_to(url: str, status_code: int = 302) -> PlainTextResponse:
    return PlainTextResponse(f"Redirecting you to {url}", status_code=status_code, headers={"Location": url})


class CASMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, config: CASConfig = None, **options):
        super().__init__(app)
        self.config = config or CASConfig(**options)
        self.client = CASClient(self.config.server_url, timeout=self.config.timeout,
                                verify_ssl=self.config.verify_ssl)
        self.ticket_store = self.config.ticket_store()
        self.session_store = self.config.session_store

        logger.info(
            "CASMiddleware configured for %s", self.config.server_url,
            extra={
                "gateway_mode": self.config.gateway_mode,
                "proxy": bool(self.config.proxy_service_url),
                "single_sign_out": self.session_store is not None,
            }
        )

    async def dispatch(self, request: Request, call_next):
        cas_request = CASRequest.from_request(
            request,
            pgt_callback_path=self.config.pgt_callback_path,
            logout_path=self.config.logout_path,
        )

        if cas_request.path_matches(self.config.exclude_paths):
            return await call_next(request)

        await cas_request.read_form(request)

        self._expire_session(cas_request)

        if cas_request.single_sign_out and self.session_store is not None:
            logger.info("cas: Intercepting single-sign-out request.")
            ticket = cas_request.ticket
            if ticket:
                self.session_store.destroy_session_by_cas_ticket(ticket)
            return PlainTextResponse("CAS Single-Sign-Out request intercepted.")

        if cas_request.ticket_validation:
            logger.info("cas: Intercepting ticket validation request.")
            return await self._validate_ticket(cas_request)

        if cas_request.pgt_callback:
            logger.info("cas: PGT Callback request.")
            pgt_params = cas_request.pgt_params
            if pgt_params:
                self.ticket_store.write(*pgt_params)
            return PlainTextResponse("CAS PGT Callback request intercepted.")

        if cas_request.logout:
            logger.info("cas: Intercepting logout request.")
            cas_request.session.clear()
            return redirect_to(self.client.get_logout_url(**cas_request.query_params))

        if cas_request.session_exists:
            if cas_request.guest_param:
                # The session exists, the cas=guest marker is no longer needed
                return redirect_to(str(URL.parse(cas_request.url).remove_param("cas")))

        elif self.config.gateway_mode and not self._skip_gateway(cas_request):
            cas_request.session["cas_anonymous"] = True
            login_url = self.client.get_login_url(cas_request.url, gateway=True)
            logger.info("cas: Gateway. Redirecting to %s", login_url)
            return redirect_to(login_url)

        response = await call_next(request)

        if response.status_code == 401 and not cas_request.xhr:
            logger.info("cas: Intercepting 401 access denied response. Redirecting to CAS login.")
            return redirect_to(self.client.get_login_url(cas_request.url))
        return response

    async def _validate_ticket(self, cas_request: CASRequest):
        service_url = cas_request.service_url
        pgt_callback_url = cas_request.pgt_callback_url if self.config.proxy_service_url else None

        ticket = cas_request.query_params["ticket"]
        result = await self.client.validate_service(service_url, ticket, pgt_callback_url)

        proxy_ticket = None
        if result.ok and self.config.proxy_service_url:
            pgt = self.ticket_store.read(result.pgt_iou)
            proxy_result = await self.client.validate_proxy_granting_ticket(self.config.proxy_service_url, pgt)
            if proxy_result.ok:
                proxy_ticket = proxy_result.proxy_ticket
            else:
                result = proxy_result

        if not result.ok:
            if result.code is FailureCode.INVALID_TICKET:
                logger.info("cas: Invalid ticket. Redirecting to CAS login.")
                return redirect_to(self.client.get_login_url(service_url))
            raise result.exception()

        self._store_session(cas_request, ticket, result.user, result.attributes, proxy_ticket)
        return redirect_to(service_url)

    def _store_session(self, cas_request: CASRequest, ticket: str, user: str, attributes: dict, proxy_ticket: str = None):
        attributes_filter = self.config.extra_attributes_filter
        if attributes_filter:
            attributes = {k: v for k, v in attributes.items() if k in attributes_filter}

        cas_request.session["cas"] = {
            "user": user,
            "ticket": ticket,
            "extra_attributes": attributes,
            "proxy_ticket": proxy_ticket,
            "client_ip": cas_request.client_ip,
        }
        cas_request.session["cas_anonymous"] = False

    def _expire_session(self, cas_request: CASRequest):
        cas = cas_request.session.get("cas")
        if not cas:
            return

        ticket = cas.get("ticket")
        if self.session_store is not None and ticket and self.session_store.is_session_destroyed(ticket):
            logger.info("cas: Session ended by single sign-out.")
            cas_request.session.clear()
        elif self.config.reset_session_on_ip_change and cas_request.client_ip_changed:
            logger.warning(
                "cas: Client IP changed, discarding session.",
                extra={"client_ip": cas_request.client_ip}
            )
            cas_request.session.clear()

    def _skip_gateway(self, cas_request: CASRequest) -> bool:
        return cas_request.guest_param or cas_request.user_agent_matches(self.config.gateway_skip_user_agents)
