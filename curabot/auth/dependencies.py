from dataclasses import dataclass

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from curabot.auth import jwt_handler
from curabot.core.context import get_db
from curabot.core.errors import ForbiddenError, UnauthorizedError
from curabot.models.user import User

security = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    id: int
    role: str
    email: str
    name: str


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Unauthorized - No Token Provided").to_http()

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        raise UnauthorizedError("Unauthorized - Invalid Token").to_http() from exc

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError) as exc:
        raise UnauthorizedError("Invalid token subject").to_http() from exc

    user = db.get(User, user_id)
    if user is None:
        raise UnauthorizedError("User not found").to_http()
    return CurrentUser(id=user.id, role=user.role, email=user.email, name=user.name)


def require_role(*allowed_roles: str):
    def _role_checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise ForbiddenError("Access forbidden: insufficient role").to_http()
        return current_user
    return _role_checker
