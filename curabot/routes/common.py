from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from curabot.core.errors import DATABASE_UNAVAILABLE_DETAIL


def database_unavailable(db: Session | None) -> HTTPException:
    if db is not None:
        db.rollback()
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )
