from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..deps import get_role, require_admin
from ..schemas import ApiResponse, MkdirRequest, MoveRequest, RenameRequest
from ..services.access import FolderLockedError, Role, check_lock
from ..services.file_ops import FileOps, PathEscapeError, decode_upload_filename, upload_name

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/api', tags=['files'])
ops = FileOps(
    settings.root_dir,
    locked_folders=[f.folder_name for f in settings.locked_folders],
    search_respects_locks=settings.search_respects_locks,
)


@contextmanager
def _fs_errors():
    try:
        yield
    except PathEscapeError as exc:
        logger.warning('Rejected path outside root: %s', exc)
        raise HTTPException(status_code=403, detail=str(exc))
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc) or 'Not found')
    except (NotADirectoryError, FileExistsError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except OSError as exc:
        logger.error('Filesystem operation failed: %s', exc)
        raise HTTPException(status_code=500, detail=f'Filesystem error: {exc.strerror or "operation failed"}')


def _content_disposition(kind: str, filename: str) -> str:
    encoded = quote(filename, safe='')
    return f"{kind}; filename=\"{encoded}\"; filename*=UTF-8''{encoded}"


@router.get('/check-admin')
def check_admin(role: Role = Depends(get_role)):
    return {'ok': True, 'data': {'is_admin': role == Role.admin}}


@router.get('/files')
def list_files(
    path: str = Query(default=''),
    pin: Optional[str] = Query(default=None),
    sort_by: str = Query(default='name', pattern='^(name|size|date)$'),
    order: str = Query(default='asc', pattern='^(asc|desc)$'),
):
    with _fs_errors():
        rel = ops.relative(ops.safe_path(path))
        if not check_lock(rel, pin, settings.locked_folders):
            raise FolderLockedError(rel)
        items = ops.list_dir(path)

    reverse = order == 'desc'
    key_map = {'name': lambda i: i['name'].lower(), 'size': lambda i: i['size_bytes'], 'date': lambda i: i['mtime']}
    items.sort(key=key_map[sort_by], reverse=reverse)
    return {'ok': True, 'data': items}


@router.get('/search')
def search(q: str = Query(..., min_length=1, max_length=255)):
    return {'ok': True, 'data': ops.search(q)}


@router.put('/rename')
def rename(payload: RenameRequest, _=Depends(require_admin)):
    with _fs_errors():
        target = ops.rename(payload.old_path, payload.new_name)
    return ApiResponse(ok=True, message='Renamed', data={'path': ops.relative(target)})


@router.delete('/delete')
def delete(path: str = Query(...), _=Depends(require_admin)):
    with _fs_errors():
        ops.delete(path)
    return ApiResponse(ok=True, message='Deleted')


@router.put('/move')
def move(payload: MoveRequest, _=Depends(require_admin)):
    with _fs_errors():
        target = ops.move(payload.source, payload.destination)
    return ApiResponse(ok=True, message='Moved', data={'path': ops.relative(target)})


@router.post('/upload')
async def upload(
    path: str = Form(default=''),
    names: str = Form(default='[]'),
    files: list[UploadFile] = File(...),
    _=Depends(require_admin),
):
    try:
        custom_names = json.loads(names or '[]')
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail='names must be a JSON array')
    if not isinstance(custom_names, list):
        raise HTTPException(status_code=400, detail='names must be a JSON array')

    saved: list[str] = []
    with _fs_errors():
        for index, file in enumerate(files):
            original = decode_upload_filename(file.filename or 'upload', settings.multipart_filename_charset)
            override = custom_names[index] if index < len(custom_names) else None
            name = upload_name(original, override if isinstance(override, str) else None)
            target = await run_in_threadpool(ops.save_upload, path, name, file.file)
            saved.append(ops.relative(target))
    return ApiResponse(ok=True, message='Uploaded', data=saved)


@router.post('/mkdir')
def mkdir(payload: MkdirRequest, _=Depends(require_admin)):
    with _fs_errors():
        target = ops.mkdir(payload.path)
    return ApiResponse(ok=True, message='Folder created', data={'path': ops.relative(target)})


@router.get('/download')
def download(path: str = Query(...)):
    with _fs_errors():
        target = ops.resolve_file(path)
    return FileResponse(target, headers={'Content-Disposition': _content_disposition('attachment', target.name)})


@router.get('/preview')
def preview(path: str = Query(...)):
    if not settings.preview_enabled:
        raise HTTPException(status_code=404, detail='Preview is disabled')
    with _fs_errors():
        target = ops.resolve_file(path)
    return FileResponse(target, headers={'Content-Disposition': _content_disposition('inline', target.name)})
