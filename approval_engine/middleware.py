from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware

if TYPE_CHECKING:
    from fastapi import FastAPI

    from approval_engine.config import Settings

IDENTITY_HEADERS = ["X-User-Id", "X-Employee-Id", "X-Roles"]


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure CORS for browser clients sending the identity headers."""
    app.add_middleware(
        CORSMiddleware,  # ty: ignore[invalid-argument-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", *IDENTITY_HEADERS],
    )
