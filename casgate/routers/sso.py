from urllib.parse import urljoin, urlsplit

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from ..config import CASConfig
from ..core.cas_client import CASClient

router = APIRouter()

def get_cas_client(request: Request) -> CASClient:
    config: CASConfig = request.app.state.cas_config
    return CASClient(config.server_url, timeout=config.timeout, verify_ssl=config.verify_ssl)

def resolve_service_url(request: Request, next_url: str) -> str:
    # Only local paths are accepted, anything else falls back to the root
    parts = urlsplit(next_url or "/")
    if parts.scheme or parts.netloc or not parts.path.startswith("/"):
        next_url = "/"
    return urljoin(str(request.base_url), next_url.lstrip("/"))

@router.get("/login/sso")
async def sso_login(
    request: Request,
    next_url: str = "/",
    cas_client: CASClient = Depends(get_cas_client),
):
    """
    Force a CAS login. The CAS server redirects back to `next_url` with a
    ticket, which CASMiddleware validates.
    """
    service_url = resolve_service_url(request, next_url)
    return RedirectResponse(cas_client.get_login_url(service_url), status_code=302)

@router.get("/logout/sso")
async def sso_logout(
    request: Request,
    next_url: str = "/",
    cas_client: CASClient = Depends(get_cas_client),
):
    """
    Logout locally and from CAS.
    """
    request.session.clear()
    service_url = resolve_service_url(request, next_url)
    return RedirectResponse(cas_client.get_logout_url(service=service_url), status_code=302)
