"""
FastAPI authentication endpoints.

Endpoints:
    POST /api/auth/login     — Authenticate and receive an access token
    POST /api/auth/register  — Create a user account
    POST /api/auth/logout    — Invalidate the current session

Handlers return placeholder payloads; credential checks, password hashing
and token issuance are not implemented. Request bodies are validated by
their schemas, so malformed input still gets a 400 validation envelope.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, status

from backend.app.api.schemas import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="User login",
    description="Authenticate user and get access token",
)
async def login(body: LoginRequest):
    logger.debug("Login attempt for %s", body.email)
    return LoginResponse(
        message="Login functionality to be implemented",
        token="placeholder-token",
        user={"id": "placeholder-id", "email": "user@example.com", "username": "user"},
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="User registration",
    description="Register a new user account",
)
async def register(body: RegisterRequest):
    return RegisterResponse(
        message="User registered successfully",
        user={"id": "new-user-id", "email": body.email, "username": body.username},
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="User logout",
    description="Invalidate user session and token",
)
async def logout():
    return MessageResponse(message="Logged out successfully")
