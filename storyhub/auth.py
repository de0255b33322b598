import os
from jose import jwt, JWTError
from datetime import datetime, timedelta
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from .errors import AuthError, ForbiddenError

# Prefer JWT_SECRET but support legacy JWT_SECRET_KEY for compatibility
SECRET = os.getenv('JWT_SECRET') or os.getenv('JWT_SECRET_KEY', 'devsecret')
ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv('ACCESS_TOKEN_EXPIRE_MINUTES', str(60 * 24 * 7)))

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({'exp': expire})
    encoded = jwt.encode(to_encode, SECRET, algorithm=ALGORITHM)
    return encoded


def decode_token(token: str):
    try:
        payload = jwt.decode(token, SECRET, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> dict:
    if not credentials:
        raise AuthError('Access token not found')
    payload = decode_token(credentials.credentials)
    if not payload:
        raise AuthError('Invalid or expired access token')
    if not payload.get('id') or not payload.get('role'):
        raise AuthError('Invalid token format')
    return {'id': payload['id'], 'role': payload['role']}


def require_roles(*roles: str):
    """Dependency factory: authenticated user whose role is one of `roles`."""
    async def dependency(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user['role'] not in roles:
            raise ForbiddenError(f"Role '{current_user['role']}' is not allowed to perform this action")
        return current_user
    return dependency
