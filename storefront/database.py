from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session
from storefront.config import settings


def build_engine(url: str):
    if url.startswith("sqlite"):
        if url in ("sqlite://", "sqlite:///:memory:"):
            # in-memory sqlite must share one connection across threads
            return create_engine(
                url,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,      # checks dead connections
        pool_recycle=1800        # refresh every 30 min
    )


engine = build_engine(settings.database_url)


def create_db_and_tables():
    from storefront import models  # noqa: F401  registers every table
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session
