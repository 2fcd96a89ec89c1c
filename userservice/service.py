"""HTTP API exposing the current user record, container identity and health."""

from __future__ import annotations

import logging
import socket
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import Settings, load_settings
from .database import MongoConnector, UserStore

logger = logging.getLogger("userservice.service")

ENDPOINTS = (
    "GET /user",
    "GET /container-id",
    "PUT /user/{newName}",
    "GET /health",
)


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str]
    id: str = Field(..., alias="_id")


class ContainerIdResponse(BaseModel):
    containerId: str
    environment: str


class UpdateUserResponse(BaseModel):
    success: bool = True
    name: str
    message: str = "User name updated successfully"


class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: str


def _iso_timestamp(value: datetime | None = None) -> str:
    moment = value or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def register_api_routes(app: FastAPI, connector: MongoConnector, settings: Settings) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    store = UserStore(connector)

    @app.get("/user", response_model=UserResponse)
    async def get_user():
        try:
            user = await store.get_current()
        except Exception:
            logger.exception("Error fetching user")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Internal server error", "name": "Error"},
            )

        if user is None:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "User not found", "name": "Unknown"},
            )
        return UserResponse(name=user.name, id=user.id)

    @app.get("/container-id", response_model=ContainerIdResponse)
    def get_container_id():
        try:
            container_id = socket.gethostname()
        except OSError:
            logger.exception("Error fetching container ID")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Internal server error", "containerId": "Error"},
            )
        return ContainerIdResponse(containerId=container_id, environment=settings.environment)

    @app.put("/user/{new_name}", response_model=UpdateUserResponse)
    async def update_user(new_name: str):
        try:
            updated = await store.rename(new_name)
        except Exception:
            logger.exception("Error updating user")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Internal server error"},
            )

        if not updated:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "User not found"},
            )

        logger.info("User name updated to %r", new_name)
        return UpdateUserResponse(name=new_name)

    @app.get("/health", response_model=HealthResponse)
    async def healthcheck():
        try:
            connected = connector.is_connected
        except Exception as exc:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unhealthy", "error": str(exc)},
            )

        if not connected:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unhealthy", "message": "Database connection lost"},
            )
        return HealthResponse(timestamp=_iso_timestamp())


def create_app(
    *,
    settings: Settings | None = None,
    connector: MongoConnector | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the current user service."""

    app_settings = settings or (connector.settings if connector is not None else load_settings())
    db = connector or MongoConnector(app_settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        await db.start()
        logger.info("Endpoints available: %s", ", ".join(ENDPOINTS))
        try:
            yield
        finally:
            logger.info("Shutting down, closing database connection")
            await db.close()

    app = FastAPI(
        title="Current User Service",
        version="0.1.0",
        description="Stores a single current user record and reports container identity.",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(app_settings.cors_allow_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = app_settings
    app.state.connector = db

    register_api_routes(app, db, app_settings)

    return app


__all__ = ["ENDPOINTS", "create_app", "register_api_routes"]
