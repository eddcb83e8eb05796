"""
Appwrite identity: JWT decoding and account lookup.

Tokens are issued and signed by Appwrite. This service only decodes them to
learn the Appwrite user id, and fetches the account on first sight to create
the local user row.
"""
import jwt
from fastapi import HTTPException, status
from appwrite.client import Client
from appwrite.services.users import Users
from appwrite.exception import AppwriteException

from app.core import config
from app.utils import get_logger


log = get_logger(__name__)


class AppwriteClient:
    """Process-wide server-side Appwrite client."""

    _instance: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._instance is None:
            client = Client()
            client.set_endpoint(config.APPWRITE_ENDPOINT)
            client.set_project(config.APPWRITE_PROJECT_ID)
            client.set_key(config.APPWRITE_API_KEY)
            cls._instance = client
        return cls._instance


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_jwt_token(token: str) -> dict:
    """
    Decode an Appwrite JWT.

    Args:
        token: Bearer token from the Authorization header

    Returns:
        Token claims; "userId" carries the Appwrite account id

    Raises:
        HTTPException: 401 if the token is expired or malformed
    """
    try:
        # signature is Appwrite's concern; expiry is still enforced
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": True})
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        log.debug(f"Rejected token: {e}")
        raise _unauthorized(f"Invalid token: {e}")


async def get_appwrite_user(user_id: str) -> dict:
    """
    Fetch an Appwrite account.

    Raises:
        HTTPException: 401 if Appwrite does not know the account
    """
    try:
        return Users(AppwriteClient.get_client()).get(user_id)
    except AppwriteException as e:
        log.warning(f"Appwrite lookup failed for {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Failed to verify user: {e}",
        )
