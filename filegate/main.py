from __future__ import annotations

import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from .config import settings
from .deps import get_role
from .routers import files
from .services.access import FolderLockedError, Role

logger = logging.getLogger(__name__)

_PACKAGE_DIR = Path(__file__).resolve().parent

app = FastAPI(title=settings.app_name)

_SECURITY_HEADERS = {
    'Content-Security-Policy': "default-src 'self'; img-src 'self' data:; frame-src 'self'",
    'X-Frame-Options': 'SAMEORIGIN',
    'X-Content-Type-Options': 'nosniff',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
}


def _parse_cors_origins(value: str) -> list[str]:
    return [origin.strip() for origin in value.split(',') if origin.strip()]


cors_origins = _parse_cors_origins(settings.cors_origins)
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type'],
    )

app.mount('/static', StaticFiles(directory=_PACKAGE_DIR / 'static'), name='static')
templates = Jinja2Templates(directory=_PACKAGE_DIR / 'templates')


def configure_logging(level: str):
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
        root.addHandler(handler)
    root.setLevel(level.upper())


def _apply_security_headers(response):
    for key, value in _SECURITY_HEADERS.items():
        response.headers[key] = value
    return response


@app.middleware('http')
async def security_middleware(request: Request, call_next):
    response = await call_next(request)
    return _apply_security_headers(response)


@app.exception_handler(FolderLockedError)
async def folder_locked_handler(request: Request, exc: FolderLockedError):
    return JSONResponse({'ok': False, 'locked': True, 'detail': 'PIN required'}, status_code=401)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error('Unhandled error on %s %s', request.method, request.url.path, exc_info=exc)
    if request.url.path.startswith('/api/'):
        response = JSONResponse({'detail': 'Internal server error. Please try again.'}, status_code=500)
    else:
        response = HTMLResponse('<h1>Unexpected error</h1><p>Please try again.</p>', status_code=500)
    return _apply_security_headers(response)


@app.on_event('startup')
def startup():
    configure_logging(settings.log_level)
    files.ops.root.mkdir(parents=True, exist_ok=True)
    logger.info('Serving %s', files.ops.root)
    if files.ops.locked_folders and not files.ops.search_respects_locks:
        logger.warning('Search results include the contents of PIN-locked folders')


@app.get('/', response_class=HTMLResponse)
def index(request: Request):
    role = get_role(request)
    return templates.TemplateResponse(
        request,
        'index.html',
        {'app_name': settings.app_name, 'is_admin': role == Role.admin},
    )


@app.get('/healthz')
def healthz():
    return {'ok': True}


app.include_router(files.router)
