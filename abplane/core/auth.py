from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .settings import config_settings

# tokenUrl is only advertised in the OpenAPI schema; tokens are issued out of band.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


def require_auth_token(token: Annotated[Optional[str], Depends(oauth2_scheme)]):
    """
    Dependency that requires a Bearer token listed in ``TOKENS``.

    With no tokens configured the API is open, which is how local runs and
    tests use it.
    """
    if not config_settings.TOKENS:
        return None

    if not token or token not in config_settings.TOKENS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token
