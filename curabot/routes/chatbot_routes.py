from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from curabot.auth.dependencies import CurrentUser, require_role
from curabot.core import errors
from curabot.core.context import get_db, get_llm
from curabot.routes.common import database_unavailable
from curabot.services.chatbot import chatbot_response
from curabot.services.llm_client import LLMClient

router = APIRouter(tags=['chatbot'])


class ChatbotRequest(BaseModel):
    message: str | None = None


@router.post('')
def chat(
    data: ChatbotRequest,
    current_user: CurrentUser = Depends(require_role('patient')),
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm),
):
    try:
        return chatbot_response(db, llm, current_user.id, data.message)
    except errors.CuraBotError as exc:
        raise exc.to_http() from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
