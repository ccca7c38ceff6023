"""
Pydantic schemas for the auth, user and health APIs.

Separated from the route handlers so they are reusable across the
codebase (tests, OpenAPI docs). Field names are snake_case in Python and
camelCase on the wire via aliases; validation errors report the wire name.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictBool


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class LoginRequest(_WireModel):
    """Request body for POST /api/auth/login."""
    email: EmailStr = Field(..., examples=["user@example.com"])
    password: str = Field(..., min_length=6, examples=["secret123"])


class RegisterRequest(_WireModel):
    """Request body for POST /api/auth/register."""
    email: EmailStr = Field(..., examples=["user@example.com"])
    username: str = Field(..., min_length=3, max_length=30, examples=["jdoe"])
    password: str = Field(..., min_length=6)
    first_name: Optional[str] = Field(None, alias="firstName", examples=["John"])
    last_name: Optional[str] = Field(None, alias="lastName", examples=["Doe"])


class UserUpdateRequest(_WireModel):
    """Request body for PATCH /api/users/{id}; every field optional."""
    email: Optional[EmailStr] = None
    username: Optional[str] = Field(None, min_length=3, max_length=30)
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    is_active: Optional[StrictBool] = Field(None, alias="isActive")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class UserSummary(_WireModel):
    id: str
    email: Optional[str] = None
    username: Optional[str] = None


class UserOut(_WireModel):
    id: str
    email: str
    username: str
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    is_active: bool = Field(..., alias="isActive")
    created_at: str = Field(..., alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")


class LoginResponse(BaseModel):
    message: str
    token: str
    user: UserSummary


class RegisterResponse(BaseModel):
    message: str
    user: UserSummary


class MessageResponse(BaseModel):
    message: str


class UserListResponse(BaseModel):
    users: List[UserOut]
    total: int
    page: int
    limit: int


class UserResponse(BaseModel):
    user: UserOut


class UserUpdateResponse(BaseModel):
    message: str
    user: Dict[str, Any]


class UserDeleteResponse(BaseModel):
    message: str
    id: str


class DatabaseStatusOut(BaseModel):
    status: str = Field(..., examples=["connected"])
    responseTime: float = Field(..., description="Probe round trip in ms")


class MemoryOut(BaseModel):
    used: int
    total: int
    percentage: float


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str
    uptime: float
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    database: DatabaseStatusOut
    memory: MemoryOut
