import os
import logging
from jose import jwt, JWTError
from fastapi import Header, HTTPException
from dotenv import load_dotenv

# Load .env file
load_dotenv()

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET")

if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET is not set in environment variables")


async def get_current_user(authorization: str = Header(...)):
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")

    token = authorization.split(" ")[1]

    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False}
        )
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")

    email = payload.get("email")
    if not email:
        # Tournament ownership is keyed on the creator's email.
        raise HTTPException(status_code=401, detail="User email not found in token")

    display_name = (
        payload.get("user_metadata", {}).get("full_name")
        or payload.get("user_metadata", {}).get("display_name")
        or email
    )

    return {
        "id": str(payload.get("sub")),
        "displayName": display_name,
        "email": email,
    }
