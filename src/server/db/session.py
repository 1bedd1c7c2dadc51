import logging

from sqlmodel import SQLModel, Session, create_engine

from src.server.settings.config import settings

logger = logging.getLogger(__name__)

connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.database_url, echo=settings.debug, connect_args=connect_args)


def init_db(bind=None) -> None:
    # Make sure every table model is registered before create_all
    from src.server.models import __all_models  # noqa: F401
    bind = bind or engine
    SQLModel.metadata.create_all(bind)
    logger.info("Database ready (%s)", bind.url)


def get_session():
    with Session(engine) as session:
        yield session
