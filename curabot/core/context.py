"""Process-wide collaborators, built once at startup and handed to handlers."""

from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from curabot.core import config
from curabot.database import build_engine, build_session_factory
from curabot.services.llm_client import LLMClient


@dataclass
class AppContext:
    engine: Engine
    session_factory: sessionmaker
    llm: LLMClient


def build_context(database_url: str | None = None, llm: LLMClient | None = None) -> AppContext:
    engine = build_engine(database_url or config.DATABASE_URL, echo=config.SQL_ECHO)
    return AppContext(
        engine=engine,
        session_factory=build_session_factory(engine),
        llm=llm or LLMClient(
            api_key=config.GROQ_API_KEY,
            base_url=config.GROQ_BASE_URL,
            timeout=config.LLM_TIMEOUT_SECONDS,
        ),
    )


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_db(context: AppContext = Depends(get_context)):
    db: Session = context.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_llm(context: AppContext = Depends(get_context)) -> LLMClient:
    return context.llm
