"""
FastAPI user management endpoints.

Endpoints:
    GET    /api/users       — List users
    GET    /api/users/{id}  — Fetch one user
    PATCH  /api/users/{id}  — Update user fields
    DELETE /api/users/{id}  — Delete a user

All handlers return canned data; there is no persistence or pagination.
The Authorization header is documented for OpenAPI but not enforced.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Path, Security
from fastapi.security import APIKeyHeader

from backend.app.api.schemas import (
    UserDeleteResponse,
    UserListResponse,
    UserResponse,
    UserUpdateRequest,
    UserUpdateResponse,
)

bearer_header = APIKeyHeader(
    name="Authorization",
    description="JWT token. Format: Bearer <token>",
    auto_error=False,
)


async def authorization_header(token: Optional[str] = Security(bearer_header)) -> Optional[str]:
    return token


router = APIRouter(
    prefix="/api/users",
    tags=["Users"],
    dependencies=[Security(authorization_header)],
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _placeholder_user(user_id: str, **overrides: Any) -> Dict[str, Any]:
    user = {
        "id": user_id,
        "email": "user@example.com",
        "username": "user",
        "firstName": "John",
        "lastName": "Doe",
        "isActive": True,
        "createdAt": _now(),
    }
    user.update(overrides)
    return user


@router.get(
    "",
    response_model=UserListResponse,
    summary="Get all users",
    description="Retrieve a list of all users",
)
async def list_users():
    return {
        "users": [
            _placeholder_user(
                "placeholder-user-1",
                email="user1@example.com",
                username="user1",
            )
        ],
        "total": 1,
        "page": 1,
        "limit": 10,
    }


@router.get(
    "/{id}",
    response_model=UserResponse,
    summary="Get user by ID",
    description="Retrieve a specific user by their ID",
)
async def get_user(id: str = Path(..., description="User ID")):
    return {"user": _placeholder_user(id, updatedAt=_now())}


@router.patch(
    "/{id}",
    response_model=UserUpdateResponse,
    summary="Update user",
    description="Update user information",
)
async def update_user(body: UserUpdateRequest, id: str = Path(..., description="User ID")):
    changes = body.model_dump(by_alias=True, exclude_unset=True, mode="json")
    return {"message": "User updated successfully", "user": {"id": id, **changes}}


@router.delete(
    "/{id}",
    response_model=UserDeleteResponse,
    summary="Delete user",
    description="Delete a user account",
)
async def delete_user(id: str = Path(..., description="User ID")):
    return {"message": "User deleted successfully", "id": id}
