from contextlib import asynccontextmanager
from datetime import datetime, timezone
from urllib.parse import unquote
import math

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel, Field, StrictFloat, StrictInt

from app.config import get_settings
from app.errors import (
    CloudBrowserError,
    EngineError,
    EngineUnavailableError,
    NavigationError,
    NavigationTimeoutError,
    OgFetchError,
    OperationTimeoutError,
    SessionNotFoundError,
)
from app.url_utils import is_valid_url, normalize_url
from app import browser, og_fetcher, sessions


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: idle-session monitor
    try:
        sessions.session_manager.start_monitor()
    except Exception as e:
        print(f"[session-monitor] Failed to start: {e}")
    yield
    # Shutdown: close sessions, then the shared OG browser
    await sessions.session_manager.stop()
    await browser.shutdown()


app = FastAPI(title="Cloud Browser API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_ERROR_STATUS = {
    SessionNotFoundError: 404,
    EngineUnavailableError: 503,
    NavigationTimeoutError: 504,
    NavigationError: 502,
    EngineError: 502,
    OperationTimeoutError: 504,
}


@app.exception_handler(CloudBrowserError)
async def cloud_browser_error_handler(request: Request, exc: CloudBrowserError):
    status = _ERROR_STATUS.get(type(exc), 500)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.exception_handler(PlaywrightError)
async def playwright_error_handler(request: Request, exc: PlaywrightError):
    # Engine failures that escaped without being wrapped still get a JSON body
    return JSONResponse(status_code=502, content={"detail": f"Browser operation failed: {exc}"})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Malformed bodies are client errors like any other bad input
    messages = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
    return JSONResponse(status_code=400, content={"detail": "; ".join(messages)})


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class NavigateRequest(BaseModel):
    url: str | None = None


class ClickRequest(BaseModel):
    x: StrictFloat | StrictInt | None = None
    y: StrictFloat | StrictInt | None = None


class TypeRequest(BaseModel):
    text: str | None = None


class ScrollRequest(BaseModel):
    delta_y: StrictFloat | StrictInt | None = Field(None, alias="deltaY")


class ExecuteRequest(BaseModel):
    script: str | None = None


class CreateSessionResponse(BaseModel):
    sessionId: str


def _require_number(value: float | None, name: str) -> float:
    if value is None or not math.isfinite(value):
        raise HTTPException(status_code=400, detail=f"{name} must be a number")
    return value


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/")
def root():
    return {"status": "ok", "service": "Cloud Browser API", "timestamp": _now()}


@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "timestamp": _now(),
        "activeSessions": sessions.session_manager.count,
        "browserConnected": browser.shared_browser.is_connected(),
    }


@app.post("/api/session/create", response_model=CreateSessionResponse)
async def create_session():
    """Launch a dedicated browser for a new remote-control session."""
    session_id = await sessions.session_manager.create()
    return CreateSessionResponse(sessionId=session_id)


@app.post("/api/session/{session_id}/navigate")
async def navigate(session_id: str, request: NavigateRequest):
    if not request.url or not request.url.strip():
        raise HTTPException(status_code=400, detail="url is required")
    url = normalize_url(request.url)
    if url is None:
        raise HTTPException(status_code=400, detail=f"Invalid URL: {request.url}")
    return await sessions.session_manager.navigate(session_id, url)


@app.get("/api/session/{session_id}/screenshot")
async def screenshot(session_id: str):
    return await sessions.session_manager.screenshot(session_id)


@app.post("/api/session/{session_id}/click")
async def click(session_id: str, request: ClickRequest):
    x = _require_number(request.x, "x")
    y = _require_number(request.y, "y")
    return await sessions.session_manager.click(session_id, x, y)


@app.post("/api/session/{session_id}/type")
async def type_text(session_id: str, request: TypeRequest):
    if not request.text:
        raise HTTPException(status_code=400, detail="text is required")
    return await sessions.session_manager.type_text(session_id, request.text)


@app.post("/api/session/{session_id}/scroll")
async def scroll(session_id: str, request: ScrollRequest):
    delta_y = _require_number(request.delta_y, "deltaY")
    return await sessions.session_manager.scroll(session_id, delta_y)


@app.post("/api/session/{session_id}/execute")
async def execute(session_id: str, request: ExecuteRequest):
    """Evaluate JavaScript in the session's page and return its value with a snapshot."""
    if not request.script or not request.script.strip():
        raise HTTPException(status_code=400, detail="script is required")
    result, page_info = await sessions.session_manager.execute(session_id, request.script)
    return {"result": result, "pageInfo": page_info}


@app.delete("/api/session/{session_id}")
async def close_session(session_id: str):
    await sessions.session_manager.close(session_id)
    return {"success": True, "message": "Session closed", "sessionId": session_id}


@app.get("/api/sessions")
async def list_sessions():
    return sessions.session_manager.list_sessions()


# ---------------------------------------------------------------------------
# Open Graph
# ---------------------------------------------------------------------------

_OG_FAILURE_STATUS = {
    "engine_unavailable": 503,
    "timeout": 504,
    "navigation_failed": 502,
}


@app.get("/api/og/{target:path}")
async def open_graph(target: str):
    """
    Scrape social-preview metadata for a URL-encoded target, e.g.
    GET /api/og/https%3A%2F%2Fexample.com%2Fpost
    """
    if not target:
        return JSONResponse(
            status_code=400, content={"error": "URL parameter is required", "success": False},
        )

    # Starlette already decoded the path once; decode again only for double-encoded targets
    url = target if "://" in target else unquote(target)
    if not is_valid_url(url):
        return JSONResponse(status_code=400, content={"error": "Invalid URL", "success": False})

    try:
        og = await og_fetcher.fetch_og(url)
    except OgFetchError as e:
        return JSONResponse(
            status_code=_OG_FAILURE_STATUS.get(e.reason, 500),
            content={"error": e.message, "reason": e.reason, "success": False},
        )

    return {**og, "success": True}


def run():
    import uvicorn

    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
