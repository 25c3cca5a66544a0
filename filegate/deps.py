from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from .config import settings
from .services.access import AccessGate, IpAllowListGate, Role

logger = logging.getLogger(__name__)

gate: AccessGate = IpAllowListGate(settings.admin_ips, trust_forwarded_for=settings.trust_forwarded_for)


def get_role(request: Request) -> Role:
    return gate.classify(request)


def require_admin(request: Request) -> Role:
    role = gate.classify(request)
    if role != Role.admin:
        client = request.client.host if request.client else 'unknown'
        logger.warning('Denied %s %s for non-admin caller %s', request.method, request.url.path, client)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Admin access denied')
    return role
