"""FastAPI application entry point"""
import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from liveserver.broadcaster import ReloadBroadcaster
from liveserver.config import LOG_LEVEL, Settings
from liveserver.dispatcher import ChangeDispatcher
from liveserver.errors import LiveServerError
from liveserver.injection import ReloadInjectionMiddleware
from liveserver.routes import create_router
from liveserver.watcher import DirectoryWatcher

log = logging.getLogger("liveserver")


def create_app(settings: Settings, watch: bool = True) -> FastAPI:
    """Assemble the live server for one entry document"""
    broadcaster = ReloadBroadcaster(
        message=settings.reload_message,
        send_timeout=settings.send_timeout,
    )
    dispatcher = ChangeDispatcher(
        broadcaster,
        debounce=settings.debounce,
        max_delay=settings.max_delay,
    )
    watcher = DirectoryWatcher(settings.root)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events"""
        task = None
        if watch:
            # Fatal: no partial service without a watch
            watcher.start()
            task = asyncio.create_task(dispatcher.run(watcher.events()), name="change-dispatcher")

        yield

        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        watcher.stop()
        await broadcaster.close_all()
        log.info("Live server stopped")

    app = FastAPI(
        title="Live Server",
        description="Static file server with live reload",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.broadcaster = broadcaster
    app.state.dispatcher = dispatcher
    app.state.watcher = watcher

    app.add_middleware(
        ReloadInjectionMiddleware,
        root=settings.root,
        entry=settings.entry,
        reload_path=settings.reload_path,
    )

    app.include_router(create_router(settings, broadcaster, lambda: watcher.is_running))

    # Static files last so the reload socket and health routes win
    app.mount("/", StaticFiles(directory=str(settings.root), html=True), name="static")

    return app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="live-server",
        description="Serve an HTML file and reload the browser when its directory changes",
    )
    parser.add_argument("entry", nargs="?", help="HTML file to serve")
    parser.add_argument("--host", help="Interface to bind")
    parser.add_argument("--port", type=int, help="Port to listen on")
    parser.add_argument("--debounce-ms", type=int, help="Quiet window before a reload (0 disables)")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Settings for the parsed command line; flags override the environment"""
    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.debounce_ms is not None:
        overrides["debounce_ms"] = args.debounce_ms
    return Settings.from_entry(args.entry, **overrides)


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.entry:
        parser.print_usage()
        return 0

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        settings = settings_from_args(args)
    except LiveServerError as e:
        log.error("%s", e)
        return 1

    import uvicorn

    log.info("Serving %s from %s", settings.entry, settings.root)
    log.info("Open %s", settings.url)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=LOG_LEVEL.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
