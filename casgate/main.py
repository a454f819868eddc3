import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from starlette.middleware.sessions import SessionMiddleware

from .auth import get_cas_user, get_cas_user_optional
from .config import CASConfig
from .core.session_store import SQLSessionStore
from .core.ticket_store import SQLPGTStore
from .database import create_db_and_tables, engine
from .middleware import CASMiddleware
from .models import CASUser

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))

# Lifespan event to create tables on startup
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Ensure data dir exists
    if not os.path.exists("data"):
        os.makedirs("data")
    create_db_and_tables()
    yield

cas_config = CASConfig.from_env(
    server_url=os.environ.get("CAS_SERVER_URL", "https://cas.example.com/cas"),
    exclude_paths=["/health"],
    ticket_store=lambda: SQLPGTStore(engine),
    session_store=SQLSessionStore(engine),
)

app = FastAPI(title="CAS Protected Application", version="1.0", lifespan=lifespan)
app.state.cas_config = cas_config

app.add_middleware(CASMiddleware, config=cas_config)
app.add_middleware(SessionMiddleware, secret_key=os.environ.get("SESSION_SECRET_KEY", "change-me"))

# Register Routers
from .routers import sso

app.include_router(sso.router)

@app.get("/")
async def root(user: CASUser | None = Depends(get_cas_user_optional)):
    if user is None:
        return {"message": "Welcome, guest"}
    return {"message": f"Welcome, {user.user}"}

@app.get("/health")
async def health():
    return {"status": "ok"}

@app.get("/profile")
async def profile(user: CASUser = Depends(get_cas_user)):
    return user

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("casgate.main:app", host="0.0.0.0", port=8000, reload=True)
