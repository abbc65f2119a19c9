import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.database import get_db
from backend.models.user import ROLE_STUDENT, ROLE_TEACHER, User

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_teacher(user: User = Depends(get_current_user)) -> User:
    if user.role != ROLE_TEACHER:
        raise HTTPException(status_code=403, detail="Only teachers can perform this action.")
    return user


def require_student(user: User = Depends(get_current_user)) -> User:
    if user.role != ROLE_STUDENT:
        raise HTTPException(status_code=403, detail="Only students can perform this action.")
    return user
