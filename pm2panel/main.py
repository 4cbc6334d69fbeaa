"""
pm2panel FastAPI application.

Web control panel for a PM2 daemon: an authenticated admin can list, start,
restart, stop and delete processes, stream their logs and browse the
sandboxed base directory for scripts to start. Every /api route requires a
session created by POST /login.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .auth import COOKIE_NAME, Session, SessionAuth, SessionStore, current_session, require_auth
from .browser import FileBrowser
from .config import Config
from .exceptions import PanelError, SupervisorConnectionError
from .gateway import SupervisorClient, SupervisorGateway
from .logs import LogStreamer
from .models import ActionResult, BrowseResult, LoginRequest, ProcessDescriptor, StartRequest, StartResult
from .pm2 import Pm2Client
from .sandbox import PathSandbox

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("pm2panel.access")

templates_dir = Path(__file__).parent / "templates"
static_dir = Path(__file__).parent / "static"
templates = Jinja2Templates(directory=str(templates_dir))


def setup_logging(config: Config):
    """Configure root logging: console plus an optional rotating file."""
    log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    handlers = [console_handler]

    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.log_file,
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
        )
        file_handler.setFormatter(log_formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=config.log_level, handlers=handlers, force=True)


# Dependencies
def get_gateway(request: Request) -> SupervisorGateway:
    return request.app.state.gateway


def ready_gateway(request: Request) -> SupervisorGateway:
    """The gateway, or 503 while PM2 is not connected."""
    gateway = get_gateway(request)
    gateway.ensure_ready()
    return gateway


# Public routes
router = APIRouter()


@router.post("/login")
async def login(data: LoginRequest, request: Request, response: Response):
    """Log in with the admin credentials and receive a session cookie."""
    auth: SessionAuth = request.app.state.auth
    config: Config = request.app.state.config

    cookie_value = auth.login(data.username, data.password, previous=current_session(request))
    response.set_cookie(
        key=COOKIE_NAME,
        value=cookie_value,
        max_age=config.session_ttl,
        httponly=True,
        secure=config.cookie_secure,
        samesite="lax",
        path="/",
    )
    return {"ok": True, "message": "Login successful"}


@router.post("/logout")
async def logout(request: Request, response: Response, session: Session = Depends(require_auth)):
    """Destroy the current session and clear its cookie."""
    auth: SessionAuth = request.app.state.auth
    config: Config = request.app.state.config

    auth.logout(session)
    response.delete_cookie(
        key=COOKIE_NAME,
        httponly=True,
        secure=config.cookie_secure,
        samesite="lax",
        path="/",
    )
    return {"ok": True, "message": "Session closed"}


# Protected API
api = APIRouter(prefix="/api", dependencies=[Depends(require_auth)])


@api.get("/status")
async def get_status(gateway: SupervisorGateway = Depends(get_gateway)):
    """PM2 connection state."""
    return {**gateway.status(), "version": __version__}


@api.get("/processes", response_model=list[ProcessDescriptor])
async def list_processes(gateway: SupervisorGateway = Depends(ready_gateway)):
    """List all PM2 processes."""
    return await gateway.list()


@api.post("/start", response_model=StartResult)
async def start_process(data: StartRequest, gateway: SupervisorGateway = Depends(ready_gateway)):
    """Start a script from the base directory under PM2."""
    return await gateway.start(data)


@api.post("/restart/{process_id}", response_model=ActionResult)
async def restart_process(process_id: str, gateway: SupervisorGateway = Depends(ready_gateway)):
    return await gateway.restart(process_id)


@api.post("/stop/{process_id}", response_model=ActionResult)
async def stop_process(process_id: str, gateway: SupervisorGateway = Depends(ready_gateway)):
    return await gateway.stop(process_id)


@api.delete("/delete/{process_id}", response_model=ActionResult)
async def delete_process(process_id: str, gateway: SupervisorGateway = Depends(ready_gateway)):
    return await gateway.delete(process_id)


@api.post("/restartAll", response_model=ActionResult)
async def restart_all(gateway: SupervisorGateway = Depends(ready_gateway)):
    return await gateway.restart_all()


@api.post("/stopAll", response_model=ActionResult)
async def stop_all(gateway: SupervisorGateway = Depends(ready_gateway)):
    return await gateway.stop_all()


@api.get("/logs/{process_id}", dependencies=[Depends(ready_gateway)])
async def get_logs(
    process_id: str,
    request: Request,
    kind: Literal["out", "err"] = Query("out", alias="type", description="out or err"),
):
    """Stream a process's stdout or stderr log file as plain text."""
    streamer: LogStreamer = request.app.state.log_streamer
    stream = await streamer.open(process_id, kind)
    if stream.placeholder is not None:
        return PlainTextResponse(stream.placeholder)
    return StreamingResponse(streamer.iter_bytes(stream), media_type="text/plain; charset=utf-8")


@api.get("/browse", response_model=BrowseResult, dependencies=[Depends(ready_gateway)])
async def browse(
    request: Request,
    directory: str = Query("", alias="dir", description="Directory relative to the base directory"),
):
    """List subdirectories and script files of a directory."""
    browser: FileBrowser = request.app.state.browser
    return await asyncio.to_thread(browser.browse, directory)


# Error handlers
async def panel_error_handler(request: Request, exc: PanelError):
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        errors.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    return JSONResponse(status_code=400, content={"ok": False, "error": "; ".join(errors) or "invalid request"})


def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)}")
    return JSONResponse(status_code=429, content={"ok": False, "error": "Too many requests, try again later"})


# Middleware
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "SAMEORIGIN"
    response.headers["Referrer-Policy"] = "no-referrer"
    response.headers["Cross-Origin-Opener-Policy"] = "same-origin"
    response.headers["Cross-Origin-Resource-Policy"] = "same-origin"
    return response


async def access_log(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = (time.perf_counter() - started) * 1000
    access_logger.info(f"{request.method} {request.url.path} {response.status_code} - {elapsed:.1f} ms")
    return response


def create_app(config: Optional[Config] = None, client: Optional[SupervisorClient] = None) -> FastAPI:
    """
    Build the application.

    With no arguments (the uvicorn factory entry point) the config comes from
    the environment and PM2 is driven through its CLI. Raises ConfigError if
    the admin password or session secret is missing.
    """
    if config is None:
        config = Config.from_env()
    config.validate()

    sandbox = PathSandbox(config.base_dir)
    if client is None:
        client = Pm2Client(binary=config.pm2_binary, timeout=config.pm2_timeout)
    gateway = SupervisorGateway(client, sandbox)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting pm2panel {__version__} | Base directory: {sandbox.base_dir}")
        try:
            await gateway.connect()
        except SupervisorConnectionError:
            logger.critical("PM2 is unavailable, refusing to start")
            raise
        yield
        logger.info("Shutting down pm2panel...")
        gateway.disconnect()

    app = FastAPI(
        title="pm2panel",
        description="Web control panel for PM2",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.sandbox = sandbox
    app.state.gateway = gateway
    app.state.auth = SessionAuth(config.admin_user, config.admin_password, SessionStore(config.session_secret, config.session_ttl))
    app.state.browser = FileBrowser(sandbox, config.script_extension)
    app.state.log_streamer = LogStreamer(gateway)

    app.add_exception_handler(PanelError, panel_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

    # Last added runs first
    app.middleware("http")(security_headers)
    app.middleware("http")(access_log)
    app.state.limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[config.rate_limit] if config.rate_limit else [],
        enabled=bool(config.rate_limit),
    )
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.cors_origin],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    app.include_router(api)
    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

    @app.api_route(
        "/api/{rest:path}",
        methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        include_in_schema=False,
    )
    async def api_not_found(rest: str):
        raise HTTPException(status_code=404, detail="Not found")

    @app.get("/{full_path:path}", include_in_schema=False)
    async def ui_shell(request: Request, full_path: str):
        """Serve the single-page UI for any other path."""
        if full_path == "api" or full_path.startswith("api/"):
            raise HTTPException(status_code=404, detail="Not found")
        return templates.TemplateResponse(
            request,
            "index.html",
            {"version": __version__, "script_extension": config.script_extension},
        )

    return app
