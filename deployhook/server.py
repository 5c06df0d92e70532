"""
HTTP interface for deployhook.

Endpoints:
    POST /webhook/deploy                  trigger a deployment
    GET  /webhook/deploy/log              query a day's run log
    GET  /webhook/deploy/log/{deploy_id}  fetch one run
    POST /reload-config                   re-read config.yaml
    GET  /health                          liveness, no auth

All endpoints except /health require `Authorization: Bearer <auth_token>`
and are rate limited per client address.
"""

import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from deployhook import __version__
from deployhook.config import DeployhookConfig, load_config
from deployhook.errors import (
    AlreadyRunningError,
    AppNotFoundError,
    ConfigError,
    EnvironmentNotFoundError,
    PersistenceError,
)
from deployhook.log_store import DEFAULT_QUERY_LIMIT
from deployhook.service import DeployService

logger = logging.getLogger(__name__)

# Security scheme for bearer token
security = HTTPBearer(auto_error=False)


class DeployRequest(BaseModel):
    app: Optional[str] = None
    env: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_limit(raw: Optional[str]) -> int:
    """Parse the `limit` query parameter; blank means the default."""
    if raw is None or not raw.strip():
        return DEFAULT_QUERY_LIMIT
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid limit '{raw}', expected a non-negative integer") from None


def require_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """Reject requests without the configured bearer token."""
    expected = request.app.state.config.auth_token
    if (
        credentials is None
        or not expected
        or not secrets.compare_digest(credentials.credentials.encode(), expected.encode())
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def create_app(config: DeployhookConfig, service: Optional[DeployService] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Loaded configuration; must define an auth token
        service: Deploy service to use; built from config if omitted

    Raises:
        ConfigError: If no auth token is configured
    """
    if not config.auth_token:
        raise ConfigError("auth_token is not set (config.yaml or DEPLOYHOOK_AUTH_TOKEN)")

    service = service or DeployService.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, waiting for running deployments")
        app.state.service.shutdown(wait=True)

    app = FastAPI(title="deployhook", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.service = service

    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    rate_limited = limiter.limit(config.rate_limit)
    auth = [Depends(require_token)]

    @app.post("/webhook/deploy", dependencies=auth)
    @rate_limited
    def trigger_deploy(request: Request, body: Optional[DeployRequest] = None):
        # A request without a JSON body counts as missing both fields
        if body is None or not body.app or not body.env:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": "Missing required fields", "required": ["app", "env"]},
            )

        svc: DeployService = request.app.state.service
        try:
            deploy_id, definition = svc.start(body.app, body.env)
        except AppNotFoundError as e:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "App not found", "available_apps": e.available},
            )
        except EnvironmentNotFoundError as e:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "Environment not found", "available_envs": e.available},
            )
        except AlreadyRunningError:
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content={"error": "Deployment already running"},
            )

        return {
            "message": "Deployment started",
            "deploy_id": deploy_id,
            "app": body.app,
            "env": body.env,
            "steps": len(definition.steps),
            "timestamp": _now(),
        }

    @app.get("/webhook/deploy/log", dependencies=auth)
    @rate_limited
    def query_logs(
        request: Request,
        limit: Optional[str] = None,
        app: Optional[str] = None,
        env: Optional[str] = None,
        date: Optional[str] = None,
    ):
        svc: DeployService = request.app.state.service
        try:
            result = svc.query(limit=_parse_limit(limit), app=app, env=env, date=date)
        except ValueError as e:
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})
        except PersistenceError as e:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Failed to read logs", "details": str(e)},
            )

        payload = result.to_dict()
        payload["filters"] = {"app": app, "env": env, "date": date}
        return payload

    @app.get("/webhook/deploy/log/{deploy_id}", dependencies=auth)
    @rate_limited
    def get_log(request: Request, deploy_id: str):
        entry = request.app.state.service.find_by_id(deploy_id)
        if entry is None:
            return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Log not found"})
        return entry.to_dict()

    @app.post("/reload-config", dependencies=auth)
    @rate_limited
    def reload_config(request: Request):
        current: DeployhookConfig = request.app.state.config
        try:
            fresh = load_config(current.config_path)
        except (ConfigError, FileNotFoundError) as e:
            logger.error(f"Failed to reload config: {e}")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Failed to reload config", "details": str(e)},
            )

        request.app.state.service.reload(fresh.registry)
        # Keep the old token if the new file does not define one
        fresh.auth_token = fresh.auth_token or current.auth_token
        request.app.state.config = fresh
        return {
            "message": "Config reloaded successfully",
            "apps": fresh.registry.list_apps(),
            "timestamp": _now(),
        }

    @app.get("/health")
    def health(request: Request):
        return {
            "status": "ok",
            "apps_loaded": len(request.app.state.service.registry),
            "timestamp": _now(),
        }

    return app
