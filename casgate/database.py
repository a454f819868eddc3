import os

from sqlmodel import SQLModel, create_engine

DATABASE_URL = os.environ.get("CAS_DATABASE_URL", "sqlite:///data/cas.db")

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

def create_db_and_tables(bind=None):
    SQLModel.metadata.create_all(bind or engine)
