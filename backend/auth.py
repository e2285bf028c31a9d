# Authentication Utilities

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from dotenv import load_dotenv
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError

from models import TokenData

load_dotenv()

logger = logging.getLogger(__name__)

# --- Configuration ---
# Generate a secret key using: openssl rand -hex 32
SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-secret-change-me-in-env")  # CHANGE THIS IN .env for production!
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))  # 1 day

# --- Password Hashing ---
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verifies a plain password against a hashed password."""
    if not hashed_password:
        # Profiles bootstrapped from an external identity have no password
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


# --- JWT Token Handling ---
def create_access_token(principal_id: str, email: Optional[str] = None, role: Optional[str] = None,
                        expires_delta: Optional[timedelta] = None) -> str:
    """Creates a JWT whose subject is the principal id."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(principal_id), "exp": expire}
    if email:
        to_encode["email"] = email
    if role:
        to_encode["role"] = role
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[TokenData]:
    """Verifies a JWT token and returns its payload, or None when invalid."""
    try:
        # jwt.decode checks expiration and raises JWTError if expired
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        if not payload.get("sub"):
            logger.warning("Token missing 'sub' claim")
            return None
        return TokenData(sub=payload["sub"], email=payload.get("email"), role=payload.get("role"))
    except JWTError as e:
        logger.info("Rejected token: %s", e)
        return None
    except ValidationError as e:
        logger.warning("Token payload validation error: %s", e)
        return None
