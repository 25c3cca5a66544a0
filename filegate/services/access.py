from __future__ import annotations

import hmac
import ipaddress
from enum import Enum
from typing import Iterable, Optional, Protocol

from starlette.requests import Request

from ..config import LockedFolder
from .file_ops import normalize_rel


class Role(str, Enum):
    admin = 'admin'
    guest = 'guest'


class FolderLockedError(Exception):
    """A locked folder was listed without the matching PIN."""

    def __init__(self, path: str):
        super().__init__(f'Folder is locked: {path}')
        self.path = path


class AccessGate(Protocol):
    def classify(self, request: Request) -> Role: ...


def _strip_mapped_prefix(address: str) -> str:
    if address.lower().startswith('::ffff:'):
        return address[7:]
    return address


def is_loopback(address: str) -> bool:
    try:
        return ipaddress.ip_address(address).is_loopback
    except ValueError:
        return False


class IpAllowListGate:
    """Admin when the caller's address is allow-listed or loopback.

    Source addresses are trivially spoofed behind a proxy, so
    ``X-Forwarded-For`` is only honoured when explicitly trusted.
    """

    def __init__(self, admin_ips: Iterable[str] = (), trust_forwarded_for: bool = False):
        self.admin_ips = {_strip_mapped_prefix(ip.strip()) for ip in admin_ips if ip.strip()}
        self.trust_forwarded_for = trust_forwarded_for

    def client_address(self, request: Request) -> str:
        if self.trust_forwarded_for:
            xff = request.headers.get('x-forwarded-for', '')
            if xff:
                return xff.split(',')[0].strip()
        return request.client.host if request.client else ''

    def classify_address(self, address: str) -> Role:
        address = _strip_mapped_prefix(address or '')
        if address in self.admin_ips or is_loopback(address):
            return Role.admin
        return Role.guest

    def classify(self, request: Request) -> Role:
        return self.classify_address(self.client_address(request))


def find_lock(path: str, locked_folders: Iterable[LockedFolder]) -> Optional[LockedFolder]:
    wanted = normalize_rel(path)
    for folder in locked_folders:
        if normalize_rel(folder.folder_name) == wanted:
            return folder
    return None


def check_lock(path: str, supplied_pin: Optional[str], locked_folders: Iterable[LockedFolder]) -> bool:
    locked = find_lock(path, locked_folders)
    if locked is None:
        return True
    if supplied_pin is None:
        return False
    return hmac.compare_digest(supplied_pin.encode(), locked.pin.encode())
