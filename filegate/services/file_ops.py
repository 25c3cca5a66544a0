from __future__ import annotations

import logging
import math
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Iterable
from urllib.parse import unquote

logger = logging.getLogger(__name__)

_SIZE_UNITS = ('Bytes', 'KB', 'MB', 'GB')
_COPY_CHUNK = 1024 * 1024


class PathEscapeError(PermissionError):
    """Raised when a requested path resolves outside the served root."""


def _clean(requested_path: str) -> str:
    return unquote(requested_path or '').replace('\\', '/').lstrip('/')


def _occupied(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def validate_path(requested_path: str, root: str) -> Path:
    base = Path(root).resolve(strict=False)
    candidate = (base / _clean(requested_path)).resolve(strict=False)
    if base != candidate and base not in candidate.parents:
        raise PathEscapeError('Path traversal detected')
    return candidate


def validate_entry_path(requested_path: str, root: str) -> Path:
    """Resolve like ``validate_path`` but keep a trailing symlink as the link.

    Mutations must act on the directory entry the caller sees, not on what
    it points to. Only the link's parent has to lie inside the root.
    """
    base = Path(root).resolve(strict=False)
    lexical = Path(os.path.normpath(base / _clean(requested_path)))
    if lexical != base and lexical.is_symlink():
        parent = lexical.parent.resolve(strict=False)
        if parent != base and base not in parent.parents:
            raise PathEscapeError('Path traversal detected')
        return parent / lexical.name
    return validate_path(requested_path, root)


def unique_path(desired: Path) -> Path:
    """Return ``desired`` or the first free ``name (n).ext`` sibling.

    The check is not atomic: a concurrent writer can claim the returned
    path before the caller uses it.
    """
    if not _occupied(desired):
        return desired

    counter = 1
    while True:
        candidate = desired.with_name(f'{desired.stem} ({counter}){desired.suffix}')
        if not _occupied(candidate):
            return candidate
        counter += 1


def format_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return '0 Bytes'
    index = int(math.floor(math.log(num_bytes) / math.log(1024)))
    index = max(0, min(index, len(_SIZE_UNITS) - 1))
    value = f'{num_bytes / 1024 ** index:.2f}'.rstrip('0').rstrip('.')
    return f'{value} {_SIZE_UNITS[index]}'


def format_mtime(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime('%d/%m/%Y %H:%M')


_LATIN1_NAMES = {'latin-1', 'latin1', 'iso-8859-1', 'iso8859-1'}


def decode_upload_filename(name: str, charset: str = 'utf-8') -> str:
    """Re-decode a multipart filename that was parsed as Latin-1.

    Only applies when ``charset`` says the parser used Latin-1; a UTF-8
    parse is already correct, and repairing it would corrupt names such as
    ``Ã©t.txt``. Names whose Latin-1 bytes are not valid UTF-8 are kept.
    """
    if charset.lower() not in _LATIN1_NAMES:
        return name
    try:
        return name.encode('latin-1').decode('utf-8')
    except (UnicodeEncodeError, UnicodeDecodeError):
        return name


def upload_name(original: str, override: str | None = None) -> str:
    name = (override or '').strip() or original
    original_ext = os.path.splitext(original)[1]
    if not os.path.splitext(name)[1]:
        name += original_ext
    return name


def _check_name(name: str) -> str:
    if not name or name in {'.', '..'} or '/' in name or '\\' in name or '\x00' in name:
        raise ValueError(f'Invalid name: {name!r}')
    return name


class FileOps:
    def __init__(self, root: str, locked_folders: Iterable[str] = (), search_respects_locks: bool = False):
        self.root = Path(root).resolve()
        self.locked_folders = {normalize_rel(name) for name in locked_folders}
        self.search_respects_locks = search_respects_locks

    def safe_path(self, rel: str) -> Path:
        return validate_path(rel, str(self.root))

    def entry_path(self, rel: str) -> Path:
        return validate_entry_path(rel, str(self.root))

    def relative(self, target: Path) -> str:
        rel = target.relative_to(self.root).as_posix()
        return '' if rel == '.' else rel

    def _entry(self, target: Path) -> dict:
        stat = target.stat()
        is_dir = target.is_dir()
        return {
            'name': target.name,
            'path': self.relative(target),
            'is_folder': is_dir,
            'ext': '' if is_dir else target.suffix.lower(),
            'size': '--' if is_dir else format_size(stat.st_size),
            'size_bytes': 0 if is_dir else stat.st_size,
            'date': format_mtime(stat.st_mtime),
            'mtime': int(stat.st_mtime),
        }

    def list_dir(self, rel: str) -> list[dict]:
        target = self.safe_path(rel)
        if not target.exists():
            raise FileNotFoundError('Directory not found')
        if not target.is_dir():
            raise NotADirectoryError('Not a directory')

        items: list[dict] = []
        for entry in sorted(target.iterdir(), key=lambda p: p.name.lower()):
            try:
                items.append(self._entry(entry))
            except FileNotFoundError:
                # removed between iterdir() and stat()
                continue
        return items

    def search(self, query: str) -> list[dict]:
        needle = query.lower()
        results: list[dict] = []
        self._scan(self.root, needle, results)
        return results

    def _scan(self, directory: Path, needle: str, results: list[dict]):
        try:
            with os.scandir(directory) as it:
                children = sorted(it, key=lambda e: e.name.lower())
        except OSError as exc:
            logger.warning('Skipping unreadable directory %s during search: %s', directory, exc)
            return

        for child in children:
            path = Path(child.path)
            try:
                if needle in child.name.lower():
                    results.append(self._entry(path))
                descend = child.is_dir(follow_symlinks=False)
            except OSError as exc:
                logger.warning('Skipping %s during search: %s', path, exc)
                continue

            if not descend:
                continue
            if self.search_respects_locks and self.relative(path) in self.locked_folders:
                continue
            self._scan(path, needle, results)

    def resolve_file(self, rel: str) -> Path:
        target = self.safe_path(rel)
        if not target.is_file():
            raise FileNotFoundError('File not found')
        return target

    def mkdir(self, rel: str) -> Path:
        target = self.safe_path(rel)
        target.mkdir(parents=True, exist_ok=True)
        logger.info('Created folder %s', self.relative(target))
        return target

    def delete(self, rel: str):
        target = self.entry_path(rel)
        if target == self.root:
            raise ValueError('Refusing to delete the root folder')
        if not _occupied(target):
            raise FileNotFoundError('Path not found')

        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()
        logger.info('Deleted %s', self.relative(target))

    def rename(self, rel: str, new_name: str) -> Path:
        target = self.entry_path(rel)
        if target == self.root:
            raise ValueError('Refusing to rename the root folder')
        if not _occupied(target):
            raise FileNotFoundError('Path not found')

        destination = target.parent / _check_name(new_name)
        if _occupied(destination):
            raise FileExistsError(f'{new_name} already exists')
        target.rename(destination)
        logger.info('Renamed %s to %s', self.relative(target), self.relative(destination))
        return destination

    def move(self, source: str, destination: str) -> Path:
        src = self.entry_path(source)
        dest_dir = self.safe_path(destination)
        if src == self.root:
            raise ValueError('Refusing to move the root folder')
        if not _occupied(src):
            raise FileNotFoundError('Source not found')
        if not dest_dir.exists():
            raise FileNotFoundError('Destination not found')
        if not dest_dir.is_dir():
            raise NotADirectoryError('Destination is not a folder')
        if not src.is_symlink() and src.is_dir() and (dest_dir == src or src in dest_dir.parents):
            raise ValueError('Cannot move a folder into itself')

        final = unique_path(dest_dir / src.name)
        shutil.move(str(src), str(final))
        logger.info('Moved %s to %s', self.relative(src), self.relative(final))
        return final

    def save_upload(self, folder_rel: str, filename: str, stream: BinaryIO) -> Path:
        folder = self.safe_path(folder_rel)
        if not folder.is_dir():
            raise FileNotFoundError('Upload folder not found')
        desired = folder / _check_name(filename)

        while True:
            final = unique_path(desired)
            try:
                handle = final.open('xb')
            except FileExistsError:
                # another writer claimed the name after unique_path() looked
                continue
            with handle:
                shutil.copyfileobj(stream, handle, _COPY_CHUNK)
                handle.flush()
                os.fsync(handle.fileno())
            logger.info('Stored upload %s', self.relative(final))
            return final


def normalize_rel(path: str) -> str:
    return '/'.join(part for part in (path or '').replace('\\', '/').split('/') if part)
