"""
HTML injection middleware
Serves the entry document with the reload client script inserted
"""
import logging
import posixpath
from pathlib import Path
from typing import Optional

from fastapi import Request
from fastapi.responses import PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

log = logging.getLogger(__name__)

RELOAD_SCRIPT_TEMPLATE = """
<script>
    (function () {
        console.log("Connecting to live reload server...");
        const scheme = location.protocol === "https:" ? "wss://" : "ws://";
        let ws;
        try {
            ws = new WebSocket(scheme + location.host + "%(path)s");
        } catch (error) {
            console.log("Live reload unavailable:", error);
            return;
        }
        ws.onopen = () => console.log("Live reload connected");
        ws.onmessage = () => {
            console.log("Reloading page...");
            location.reload();
        };
        ws.onerror = (error) => console.log("WebSocket error:", error);
        ws.onclose = () => console.log("Live reload disconnected");
    })();
</script>"""

# Insertion points, tried in order; first match wins
CLOSING_TAGS = (b"</body>", b"</html>")

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def reload_script(reload_path: str = "/ws") -> bytes:
    return (RELOAD_SCRIPT_TEMPLATE % {"path": reload_path}).encode("utf-8")


def inject_script(content: bytes, script: bytes) -> bytes:
    """Insert script before the first </body>, else </html>, else append

    Tag matching is case-sensitive and literal; the rest of the content is
    left byte-for-byte unchanged.
    """
    for tag in CLOSING_TAGS:
        index = content.find(tag)
        if index != -1:
            return content[:index] + script + b"\n" + content[index:]
    return content + script


def should_inject(path: str, entry: str) -> bool:
    return path == "/" or path == "/" + entry or posixpath.basename(path) == entry


def resolve_entry_path(root: Path, path: str, entry: str) -> Optional[Path]:
    """Map a request path to a file under root; None if it escapes root
    or cannot be resolved"""
    relative = path.lstrip("/") or entry
    try:
        candidate = (root / relative).resolve()
    except (OSError, RuntimeError, ValueError) as e:
        # Symlink loops, embedded NUL bytes
        log.warning("Cannot resolve %s: %s", path, e)
        return None
    if not candidate.is_relative_to(root):
        return None
    return candidate


class ReloadInjectionMiddleware(BaseHTTPMiddleware):
    """
    Intercepts requests for the entry document and serves it with the
    reload script injected. Everything else passes through untouched.
    """

    def __init__(self, app, root: Path, entry: str, reload_path: str = "/ws"):
        super().__init__(app)
        self.root = Path(root).resolve()
        self.entry = entry
        self.script = reload_script(reload_path)

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if request.method not in ("GET", "HEAD") or not should_inject(path, self.entry):
            return await call_next(request)

        file_path = resolve_entry_path(self.root, path, self.entry)
        if file_path is None:
            log.warning("Rejected path: %s", path)
            return PlainTextResponse("Not Found", status_code=404)

        try:
            data = await run_in_threadpool(file_path.read_bytes)
        except OSError as e:
            log.warning("Cannot read %s: %s", file_path, e)
            return PlainTextResponse("Not Found", status_code=404)

        return Response(
            content=inject_script(data, self.script),
            media_type="text/html",
            headers=NO_CACHE_HEADERS,
        )
