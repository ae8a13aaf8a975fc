"""FastAPI application for submitting and retrieving shared conversations."""
from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .config import load_config
from .errors import ContentTooLargeError, EmptyContentError, IdAllocationError, RateLimitExceeded
from .service import ShareService
from .storage import KeyValueStore, create_store
from .types import Format

logger = logging.getLogger(__name__)


# -----------------------------
# Pydantic response models
# -----------------------------
class SubmitResponse(BaseModel):
    success: bool = True
    id: str
    url: str


# -----------------------------
# Utilities
# -----------------------------
def _client_identity(request: Request, header: str) -> str:
    value = request.headers.get(header) if header else None
    if value:
        return value.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def _read_submission(request: Request) -> str:
    raw = (await request.body()).decode("utf-8", errors="replace")
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type:
        return raw
    try:
        body = json.loads(raw)
    except ValueError:
        return raw
    # Wrapped submissions carry the transcript in "html" or "content";
    # anything else (e.g. a bare conversation array) is the transcript itself.
    if isinstance(body, dict):
        value = body.get("html") or body.get("content")
        return value if isinstance(value, str) else ""
    return raw


def _configure_logging(cfg: Dict[str, Any]) -> None:
    level = str(cfg.get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    store: Optional[KeyValueStore] = None,
    service: Optional[ShareService] = None,
) -> FastAPI:
    cfg = load_config(config_path)
    _configure_logging(cfg)

    srv_cfg = cfg.get("server", {})
    ip_header = str(srv_cfg.get("client_ip_header", "CF-Connecting-IP"))
    cache_control = f"public, max-age={int(srv_cfg.get('cache_max_age', 3600))}"

    # Services
    if service is None:
        service = ShareService.from_config(cfg, store or create_store(cfg))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Remote stores hold an HTTP client that must be closed on shutdown.
        aclose = getattr(service.store, "aclose", None)
        if aclose is not None:
            logger.info("Closing %s", type(service.store).__name__)
            await aclose()

    app = FastAPI(title="sharechat", version="0.1.0", lifespan=lifespan)
    app.state.service = service

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "storage": type(service.store).__name__,
        }

    @app.get("/")
    async def root() -> JSONResponse:
        return JSONResponse(
            {
                "ok": True,
                "msg": "POST a chat transcript (JSON, exported HTML or plain text) to / to share it.",
            }
        )

    @app.post("/", response_model=SubmitResponse)
    async def submit(request: Request):
        identity = _client_identity(request, ip_header)
        try:
            body = await _read_submission(request)
            record = await service.submit(body, identity)
        except RateLimitExceeded as e:
            headers = {"Retry-After": str(e.retry_after)} if e.retry_after else None
            raise HTTPException(status_code=429, detail=str(e), headers=headers)
        except EmptyContentError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ContentTooLargeError as e:
            raise HTTPException(status_code=413, detail=str(e))
        except IdAllocationError as e:
            logger.error("Could not allocate an id: %s", e)
            raise HTTPException(status_code=500, detail=str(e))

        url = str(request.base_url).rstrip("/") + "/" + record.id
        return SubmitResponse(id=record.id, url=url)

    async def _load(conversation_id: str):
        if not service.is_valid_id(conversation_id):
            raise HTTPException(status_code=400, detail="Invalid conversation ID")
        record = await service.retrieve(conversation_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return record

    def _raw_response(text: str) -> Response:
        # Served as plain text so stored markup is never executed by the browser.
        return Response(
            content=text,
            media_type="text/plain",
            headers={"Cache-Control": cache_control, "X-Content-Type-Options": "nosniff"},
        )

    @app.get("/raw/{conversation_id}")
    async def get_raw(conversation_id: str):
        record = await _load(conversation_id)
        return _raw_response(record.raw)

    @app.get("/{conversation_id}")
    async def get_conversation(conversation_id: str):
        record = await _load(conversation_id)
        if record.format == Format.RAW:
            return _raw_response(record.raw)
        return JSONResponse(record.to_dict(), headers={"Cache-Control": cache_control})

    return app
