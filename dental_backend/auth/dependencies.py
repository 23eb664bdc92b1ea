import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from dental_backend.auth import jwt_handler
from dental_backend.database import get_db
from dental_backend.models.user import User

security = HTTPBearer(auto_error=False)

UNAUTHORIZED_DETAIL = "No autorizado"


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL)

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL) from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL)

    user = db.query(User).filter(User.email == email).first()
    if user is None or not user.organization_id:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL)

    # A token minted for one organization never reaches another tenant's data.
    token_organization = payload.get("org")
    if token_organization and token_organization != user.organization_id:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL)

    return user
