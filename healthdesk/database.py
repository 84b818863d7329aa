# healthdesk/database.py
import logging

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from . import errors

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_session_factory(database_url: str) -> sessionmaker:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # requests are served from the threadpool
        connect_args["check_same_thread"] = False
    engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)

    from . import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def commit_or_fail(db: Session, failure_message: str) -> None:
    """Commit, turning a database failure into a ServiceError with the driver message."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("%s: %s", failure_message, exc)
        raise errors.ServiceError(failure_message, details=str(exc)) from exc
