from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError
from sqlalchemy.orm import Session

from therapy_backend.auth import jwt_handler
from therapy_backend.database import get_db
from therapy_backend.models.user import ROLE_ADMIN, User

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None or user.is_active is False:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_therapist_access(current_user: User, therapist_id: int) -> None:
    """Only the therapist themself or an admin may change a therapist's schedule."""
    if current_user.role == ROLE_ADMIN:
        return
    if current_user.id != therapist_id:
        raise HTTPException(
            status_code=403,
            detail="You can only manage your own availability.",
        )
