from typing import Annotated

from fastapi import APIRouter, Depends, Request

from homebank_bridge.api.dependencies import SESSION_USER_KEY, get_auth_service, require_auth
from homebank_bridge.api.schemas import Credentials
from homebank_bridge.models import User
from homebank_bridge.services.auth import AuthService

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _start_session(request: Request, user: User) -> None:
    # Drop whatever the client carried in before binding the new identity.
    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id


@router.get("/status")
async def auth_status(
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> dict[str, bool]:
    return auth.status()


@router.get("/me", response_model=User)
async def current_user(user: Annotated[User, Depends(require_auth)]) -> User:
    return user


@router.post("/register", status_code=201, response_model=User)
async def register(
    credentials: Credentials,
    request: Request,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> User:
    user = await auth.register(credentials.username, credentials.password)
    _start_session(request, user)
    return user


@router.post("/login", response_model=User)
async def login(
    credentials: Credentials,
    request: Request,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> User:
    request.session.clear()
    user = await auth.login(credentials.username, credentials.password)
    _start_session(request, user)
    return user


@router.post("/logout")
async def logout(request: Request) -> dict[str, str]:
    request.session.clear()
    return {"message": "Logged out"}
