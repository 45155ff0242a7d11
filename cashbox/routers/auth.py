from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from cashbox import messages
from cashbox.deps import require_user
from cashbox.exceptions import AuthenticationError
from cashbox.models.base import get_db
from cashbox.models.user import User
from cashbox.serializers import ok
from cashbox.services.auth import authenticate_user, login_user, logout_user

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginIn(BaseModel):
    username: str
    password: str


@router.post("/login")
def login(data: LoginIn, request: Request, db: Session = Depends(get_db)):
    user = authenticate_user(db, data.username.strip(), data.password)
    if user is None:
        raise AuthenticationError(messages.INVALID_CREDENTIALS)
    login_user(request, user)
    return ok(user.to_dict())


@router.post("/logout")
def logout(request: Request):
    logout_user(request)
    return ok()


@router.get("/me")
def me(user: User = Depends(require_user)):
    return ok(user.to_dict())
