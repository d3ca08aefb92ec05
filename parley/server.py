"""Process entry point: both listeners, shared state and background sweeps."""

import argparse
import asyncio
import signal
from pathlib import Path

import uvicorn
from fastapi import FastAPI

from parley.admin_app import create_admin_app
from parley.core import create_engine, create_session_maker, init_db, load_settings, setup_logging
from parley.core.config import Settings
from parley.core.lifecycle import start_background_tasks, stop_background_tasks
from parley.core.logging import get_logger
from parley.main import create_user_app
from parley.state import AppState, build_state

logger = get_logger("server")


def _uvicorn_server(app: FastAPI, settings: Settings, port: int) -> uvicorn.Server:
    config = uvicorn.Config(
        app,
        host=settings.bind_host,
        port=port,
        # Logging is configured by setup_logging
        log_config=None,
        server_header=False,
        proxy_headers=False,
    )
    return uvicorn.Server(config)


def _reload(state: AppState) -> None:
    try:
        state.reload_config()
    except Exception:
        logger.exception("Configuration reload failed, keeping the current settings")


async def _serve_all(servers: list[uvicorn.Server]) -> None:
    """Run the servers until any one of them stops, then stop the rest."""
    tasks = [asyncio.create_task(server.serve()) for server in servers]
    await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for server in servers:
        server.should_exit = True
    await asyncio.gather(*tasks)


async def serve(settings: Settings, config_file: Path | None = None) -> None:
    engine = create_engine(settings.database_url, echo=settings.debug)
    await init_db(engine)
    state = build_state(settings, create_session_maker(engine), config_file=config_file)

    servers = [
        _uvicorn_server(create_user_app(state), settings, settings.user_port),
        _uvicorn_server(create_admin_app(state), settings, settings.admin_port),
    ]

    sighup = getattr(signal, "SIGHUP", None)
    if sighup is not None:
        asyncio.get_running_loop().add_signal_handler(sighup, _reload, state)

    logger.info(
        f"Starting {settings.app_name} v{settings.app_version}: "
        f"user listener on {settings.bind_host}:{settings.user_port}, "
        f"admin listener on {settings.bind_host}:{settings.admin_port}"
    )

    tasks = start_background_tasks(state)
    try:
        await _serve_all(servers)
    finally:
        logger.info("Shutting down...")
        await stop_background_tasks(tasks)
        if sighup is not None:
            asyncio.get_running_loop().remove_signal_handler(sighup)
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Parley messaging server")
    parser.add_argument("--config", type=Path, help="TOML config file (re-read on SIGHUP)")
    parser.add_argument("--host", help="Bind address for both listeners")
    parser.add_argument("--user-port", type=int, help="User listener port")
    parser.add_argument("--admin-port", type=int, help="Admin listener port")
    args = parser.parse_args()

    overrides = {
        "bind_host": args.host,
        "user_port": args.user_port,
        "admin_port": args.admin_port,
    }
    settings = load_settings(
        args.config, **{k: v for k, v in overrides.items() if v is not None}
    )
    setup_logging(
        level=settings.log_level,
        format_type="structured" if not settings.debug else "text",
    )

    try:
        asyncio.run(serve(settings, args.config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
