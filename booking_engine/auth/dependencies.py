from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from booking_engine.auth import jwt_handler
from booking_engine.auth.permissions import Principal
from booking_engine.database import get_db
from booking_engine.models.user import User

security = HTTPBearer()


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Principal:
    try:
        email, user_id = jwt_handler.read_claims(credentials.credentials)
    except jwt_handler.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    user = db.query(User).filter(User.email == email).first()
    if user is None or (user_id is not None and user.id != user_id):
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is inactive")
    return Principal.from_user(user)
