from typing import Optional

from fastapi import Header, HTTPException, Request, status

from skorbot.runtime import ChatRuntime
from skorbot.schemas.chat import AuthenticatedUser

USER_ID_HEADER = "x-user-id"
USER_NAME_HEADER = "x-user-name"
USER_EMAIL_HEADER = "x-user-email"


def get_runtime(request: Request) -> ChatRuntime:
    return request.app.state.runtime


def user_from_headers(headers) -> Optional[AuthenticatedUser]:
    """Identity forwarded by the auth proxy in front of the service, if any."""
    user_id = (headers.get(USER_ID_HEADER) or "").strip()
    if not user_id:
        return None
    return AuthenticatedUser(
        user_id=user_id,
        display_name=headers.get(USER_NAME_HEADER),
        email=headers.get(USER_EMAIL_HEADER),
    )


def require_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
) -> AuthenticatedUser:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not authenticated")
    return AuthenticatedUser(user_id=x_user_id.strip(), display_name=x_user_name, email=x_user_email)
