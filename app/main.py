from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from config.settings import get_settings
from relay.relay import ChatRelay, build_relay


settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="[%(asctime)s] %(levelname)s - %(message)s",
)
logger = logging.getLogger("chat_relay")

EMPTY_QUERY_MESSAGE = "查询内容不能为空"
INTERNAL_ERROR_MESSAGE = "服务器内部错误"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    relay = build_relay(settings)
    relay.memory.load_long_term_memory()
    app.state.relay = relay
    logger.info(
        "Service ready: model=%s key_set=%s port=%s",
        settings.model_name,
        bool(settings.ark_api_key),
        settings.port,
    )
    try:
        yield
    finally:
        await relay.aclose()


app = FastAPI(title="Chat Memory Relay", version="1.0.0", lifespan=lifespan)

# CORS: allow local frontend during development
if settings.app_env.lower() in {"dev", "development", "local"}:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


class ChatRequest(BaseModel):
    query: Optional[str] = Field(None, description="User's latest message")


def get_relay(request: Request) -> ChatRelay:
    return request.app.state.relay


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning("Rejected malformed chat request: %s", exc.errors())
    return JSONResponse(status_code=400, content={"error": EMPTY_QUERY_MESSAGE})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("服务器错误: %s", exc)
    return JSONResponse(status_code=500, content={"error": INTERNAL_ERROR_MESSAGE})


@app.post("/api/chat")
async def chat(req: ChatRequest, request: Request):
    query = req.query or ""
    if not query.strip():
        return JSONResponse(status_code=400, content={"error": EMPTY_QUERY_MESSAGE})

    relay = get_relay(request)
    logger.info("Incoming chat: query_len=%s", len(query))
    return StreamingResponse(
        relay.stream_reply(query, is_disconnected=request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@app.get("/api/memory")
def memory_stats(request: Request) -> Dict[str, Any]:
    return get_relay(request).memory.stats()


@app.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


def run() -> None:
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
