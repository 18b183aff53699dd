"""Authentication module using signed bearer tokens.

This module provides:
1. JWT access tokens whose subject is the caller's address
2. Token verification with expiry
3. A FastAPI dependency resolving the authenticated address
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, ExpiredSignatureError, JWTError

# Configure logging
logger = logging.getLogger(__name__)

# Constants
JWT_ALGORITHM = "HS256"
DEFAULT_EXPIRY_MINUTES = 60


class AuthError(Exception):
    """Base exception for authentication errors."""
    pass


class SessionExpiredError(AuthError):
    """Raised when a token has expired."""
    pass


class InvalidTokenError(AuthError):
    """Raised when a token is malformed or its signature does not verify."""
    pass


class TokenManager:
    """Issues and verifies access tokens."""

    def __init__(self, secret: Optional[str] = None, expiry_minutes: int = DEFAULT_EXPIRY_MINUTES):
        """Initialize token manager.

        Args:
            secret: Signing secret. A random one is generated when empty,
                which invalidates issued tokens on restart.
            expiry_minutes: Lifetime of issued tokens
        """
        if not secret:
            logger.warning("No jwt_secret configured, generating a random one")
            secret = secrets.token_urlsafe(32)
        self._secret = secret
        self.expiry_minutes = expiry_minutes

    def create_access_token(self, address: str) -> Dict[str, Any]:
        """Create a token for ``address``.

        Returns:
            Dict containing:
                - token: Bearer token for future requests
                - expires_at: Token expiration timestamp
        """
        if not address or not address.strip():
            raise AuthError("Address is required")

        expires_at = datetime.now(timezone.utc) + timedelta(minutes=self.expiry_minutes)
        token = jwt.encode(
            {
                'sub': address,
                'exp': int(expires_at.timestamp())
            },
            self._secret,
            algorithm=JWT_ALGORITHM
        )
        logger.info(f"Issued access token for {address}")
        return {
            'token': token,
            'expires_at': expires_at.isoformat()
        }

    def verify_token(self, token: str) -> str:
        """Verify a token.

        Returns:
            The authenticated address

        Raises:
            SessionExpiredError: If the token has expired
            InvalidTokenError: For any other verification failure
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM])
        except ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {str(e)}")

        address = payload.get('sub')
        if not address:
            raise InvalidTokenError("Token has no subject")
        return address


# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token required"
)


def get_token_manager(request: Request) -> TokenManager:
    """Token manager attached to the running application."""
    return request.app.state.tokens


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
    tokens: TokenManager = Depends(get_token_manager)
) -> str:
    """FastAPI dependency for getting authenticated user.

    Args:
        credentials: Bearer token credentials
        tokens: Token manager of the application

    Returns:
        The authenticated address

    Raises:
        HTTPException: If authentication fails
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )
    try:
        return tokens.verify_token(credentials.credentials)
    except SessionExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired",
            headers={"WWW-Authenticate": "Bearer"}
        )
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"}
        )


# Export public interface
__all__ = [
    'TokenManager',
    'auth_scheme',
    'get_current_user',
    'get_token_manager',
    'AuthError',
    'SessionExpiredError',
    'InvalidTokenError',
    'JWT_ALGORITHM'
]
