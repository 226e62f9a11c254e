"""
api.py: FastAPI app for the file explorer.

Endpoints:
  /health              : liveness check (no auth)
  /manifest            : manifest for a whitelisted folder (rate limited)
  /folders             : list of whitelisted folders
  /generate-manifest   : walk a folder now, optionally saving manifest.json
"""

import logging
from typing import Optional

from fastapi import FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .config import GatewayConfig
from .exceptions import GatewayError
from .gateway.access import AccessGateway

API_DOCUMENTATION = {
    "health": "GET /health (no auth required)",
    "manifest": "GET /manifest?folder=path (requires X-API-Key header)",
    "folders": "GET /folders (requires X-API-Key header)",
    "generate-manifest": "GET /generate-manifest?folder=path&save=0|1&key=KEY",
}


# ── Response models ────────────────────────────────────────────────────
class HealthResponse(BaseModel):
    status: str
    timestamp: str
    environment: str

class FoldersResponse(BaseModel):
    folders: list[str]
    message: str = "List of accessible folders"

class SaveResponse(BaseModel):
    status: str
    message: str
    path: str
    size: int
    itemCount: int


def _client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _is_truthy(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() not in ("0", "false", "no", "off")


def create_app(cfg: Optional[GatewayConfig] = None, gateway: Optional[AccessGateway] = None) -> FastAPI:
    if gateway is None:
        gateway = AccessGateway(cfg or GatewayConfig.from_env())

    app = FastAPI(title="File Explorer API", version=config.MANIFEST_VERSION)
    app.state.gateway = gateway

    # ── Error mapping ──────────────────────────────────────────────────
    @app.exception_handler(GatewayError)
    async def gateway_error(request: Request, exc: GatewayError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content={
                "error": "Not Found",
                "message": "API endpoint not found",
                "documentation": API_DOCUMENTATION,
            })
        return JSONResponse(status_code=exc.status_code, content={
            "error": "Error",
            "message": str(exc.detail),
        })

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logging.exception(f"[ERROR] Request failed: {request.url.path}")
        return JSONResponse(status_code=500, content={
            "error": "Server Error",
            "message": "An error occurred while processing your request",
        })

    # ── Routes ─────────────────────────────────────────────────────────
    @app.get("/health", response_model=HealthResponse)
    def health():
        return gateway.health()

    @app.get("/manifest")
    def manifest(request: Request,
                 folder: Optional[str] = Query(default=None),
                 key: Optional[str] = Query(default=None),
                 x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")):
        source = _client_address(request)
        data = gateway.handle_manifest_request(x_api_key or key, folder, source)
        logging.info(f"[SUCCESS] Manifest served for folder: {folder} to {source}")
        return JSONResponse(
            content=data,
            headers={"Cache-Control": f"public, max-age={config.CACHE_MAX_AGE_SEC}"},
        )

    @app.get("/folders", response_model=FoldersResponse)
    def folders(key: Optional[str] = Query(default=None),
                x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")):
        return FoldersResponse(folders=gateway.list_allowed_folders(x_api_key or key))

    @app.get("/generate-manifest")
    def generate_manifest(request: Request,
                          folder: Optional[str] = Query(default=None),
                          save: Optional[str] = Query(default="0"),
                          key: Optional[str] = Query(default=None),
                          x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")):
        result = gateway.generate_manifest(key or x_api_key, folder, save=_is_truthy(save),
                                           source=_client_address(request))
        if _is_truthy(save):
            return SaveResponse(**result)
        return JSONResponse(content=result)

    return app
