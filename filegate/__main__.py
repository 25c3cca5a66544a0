from __future__ import annotations

import uvicorn

from .config import settings


def run():
    uvicorn.run('filegate.main:app', host=settings.app_host, port=settings.app_port, log_level=settings.log_level)


if __name__ == '__main__':
    run()
