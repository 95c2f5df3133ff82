#!/usr/bin/env python
"""
Server Entry Point

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py
    Gunicorn:     python run_server.py --gunicorn
                  (same as: gunicorn src.main:app -c gunicorn.conf.py)

Host, port and worker count default to API_HOST, API_PORT and API_WORKERS.
"""

import argparse
import subprocess
import sys
from pathlib import Path

import structlog

sys.path.insert(0, str(Path(__file__).parent))

from src.config import get_settings  # noqa: E402
from src.config.logging import configure_logging  # noqa: E402

logger = structlog.get_logger("run_server")


def run_uvicorn(port: int, dev: bool) -> None:
    import uvicorn
    
    settings = get_settings()
    options = {
        "host": settings.api_host,
        "port": port,
        "log_level": settings.monitoring.log_level.lower(),
        "access_log": True,
    }
    if dev:
        options.update(reload=True, reload_dirs=["src"])
    else:
        options.update(
            workers=settings.api_workers,
            proxy_headers=True,
            forwarded_allow_ips="*",
            server_header=False,
        )
    uvicorn.run("src.main:app", **options)


def run_gunicorn(port: int) -> int:
    settings = get_settings()
    cmd = [
        "gunicorn",
        "src.main:app",
        "-c", "gunicorn.conf.py",
        "--bind", f"{settings.api_host}:{port}",
    ]
    return subprocess.run(cmd).returncode


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Operations Dashboard API Server")
    parser.add_argument("--dev", action="store_true", help="Auto-reload, single process")
    parser.add_argument("--gunicorn", action="store_true", help="Run under Gunicorn")
    parser.add_argument("--port", type=int, default=None, help="Override API_PORT")
    args = parser.parse_args()
    
    configure_logging()
    port = args.port or get_settings().api_port
    
    if args.gunicorn:
        logger.info("Starting API under Gunicorn", port=port)
        sys.exit(run_gunicorn(port))
    
    logger.info("Starting API under Uvicorn", port=port, reload=args.dev)
    run_uvicorn(port, dev=args.dev)
