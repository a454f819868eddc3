import pytest
from fastapi import Depends, FastAPI, Form, Request
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, create_engine
from starlette.middleware.sessions import SessionMiddleware

from casgate.auth import get_cas_user, require_attribute
from casgate.config import CASConfig
from casgate.middleware import CASMiddleware
from casgate.models import CASUser
from casgate.routers import sso

from sqlalchemy.pool import StaticPool

CAS_SERVER_URL = "https://cas.example.com/cas"

SUCCESS_XML = b"""<cas:serviceResponse xmlns:cas='http://www.yale.edu/tp/cas'>
    <cas:authenticationSuccess>
        <cas:user>alice</cas:user>
        <cas:attributes>
            <cas:role>admin</cas:role>
            <cas:email>a@b.com</cas:email>
        </cas:attributes>
    </cas:authenticationSuccess>
</cas:serviceResponse>"""

PGT_SUCCESS_XML = b"""<cas:serviceResponse xmlns:cas='http://www.yale.edu/tp/cas'>
    <cas:authenticationSuccess>
        <cas:user>alice</cas:user>
        <cas:proxyGrantingTicket>PGTIOU-84678-8a9d</cas:proxyGrantingTicket>
    </cas:authenticationSuccess>
</cas:serviceResponse>"""

PROXY_SUCCESS_XML = b"""<cas:serviceResponse xmlns:cas='http://www.yale.edu/tp/cas'>
    <cas:proxySuccess>
        <cas:proxyTicket>PT-957-ZuucXqTZ1YcJw81T3dxf</cas:proxyTicket>
    </cas:proxySuccess>
</cas:serviceResponse>"""


def failure_xml(code: str, message: str = "Ticket not recognized") -> bytes:
    return f"""<cas:serviceResponse xmlns:cas='http://www.yale.edu/tp/cas'>
    <cas:authenticationFailure code="{code}">
        {message}
    </cas:authenticationFailure>
</cas:serviceResponse>""".encode()


def logout_request_xml(ticket: str) -> str:
    return (
        '<samlp:LogoutRequest xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol" '
        'xmlns:saml="urn:oasis:names:tc:SAML:2.0:assertion" ID="LR-1" Version="2.0" '
        'IssueInstant="2024-01-01T00:00:00Z">'
        '<saml:NameID>@NOT_USED@</saml:NameID>'
        f'<samlp:SessionIndex>{ticket}</samlp:SessionIndex>'
        '</samlp:LogoutRequest>'
    )


def build_app(**options) -> FastAPI:
    config = CASConfig(server_url=CAS_SERVER_URL, **options)

    app = FastAPI()
    app.state.cas_config = config

    @app.get("/")
    async def root():
        return {"message": "home"}

    @app.post("/")
    async def root_post():
        return {"message": "posted"}

    @app.post("/comment")
    async def comment(text: str = Form(...)):
        return {"text": text}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/protected")
    async def protected(user: CASUser = Depends(get_cas_user)):
        return user

    @app.get("/admin")
    async def admin(user: CASUser = Depends(require_attribute("role", "admin"))):
        return user

    @app.get("/session")
    async def session_dump(request: Request):
        return dict(request.session)

    app.include_router(sso.router)
    app.add_middleware(CASMiddleware, config=config)
    app.add_middleware(SessionMiddleware, secret_key="test-secret")
    return app


@pytest.fixture(name="make_client")
def make_client_fixture():
    def make_client(**options):
        return TestClient(build_app(**options))
    return make_client

@pytest.fixture(name="client")
def client_fixture(make_client):
    return make_client()

@pytest.fixture(name="engine")
def engine_fixture():
    # Use in-memory database for testing
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
