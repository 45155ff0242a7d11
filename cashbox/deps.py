from fastapi import Depends, Request
from sqlalchemy.orm import Session

from cashbox.exceptions import AuthenticationError, PermissionDeniedError
from cashbox.models.base import get_db
from cashbox.models.user import User
from cashbox.services.auth import get_current_user, is_admin_or_owner


def require_user(request: Request, db: Session = Depends(get_db)) -> User:
    user = get_current_user(request, db)
    if user is None:
        raise AuthenticationError()
    return user


def require_admin(user: User = Depends(require_user)) -> User:
    if not is_admin_or_owner(user):
        raise PermissionDeniedError()
    return user
