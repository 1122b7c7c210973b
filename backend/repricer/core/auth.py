from fastapi import Depends, HTTPException, Header
import jwt

from repricer.core.config import settings


def _decode(token: str) -> dict:
    if settings.JWT_SECRET:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
    # upstream gateway already validated the signature
    return jwt.decode(token, options={"verify_signature": False})


def verify_token(authorization: str = Header(None)) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    try:
        token = authorization.replace("Bearer ", "").strip()
        decoded = _decode(token)

        user_id = decoded.get("sub")
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid token: no user ID")

        return user_id

    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {str(e)}")


def get_current_user(user_id: str = Depends(verify_token)) -> str:
    return user_id


def get_org_id(x_organization_id: str = Header(None)) -> str:
    if not x_organization_id:
        raise HTTPException(status_code=400, detail="Missing X-Organization-ID header")
    return x_organization_id
