"""Configuration for the live reload server"""
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from liveserver.errors import EntryNotFoundError

# Load .env from the working directory
load_dotenv()

# Network
HOST = os.getenv("LIVESERVER_HOST", "127.0.0.1")
PORT = int(os.getenv("LIVESERVER_PORT", "8080"))

# Reload protocol
RELOAD_PATH = "/ws"
RELOAD_MESSAGE = "reload"
HEALTH_PATH = "/__livereload/health"

# Debounce: quiet window after the last change, and the hard cap measured
# from the first change of a burst
DEBOUNCE_MS = int(os.getenv("LIVESERVER_DEBOUNCE_MS", "100"))
MAX_DELAY_MS = int(os.getenv("LIVESERVER_MAX_DELAY_MS", "500"))

# Seconds a single client gets to accept a reload message
SEND_TIMEOUT = float(os.getenv("LIVESERVER_SEND_TIMEOUT", "2.0"))

LOG_LEVEL = os.getenv("LIVESERVER_LOG_LEVEL", "INFO").upper()


@dataclass(frozen=True)
class Settings:
    """Runtime settings, built once at startup"""
    root: Path
    entry: str
    host: str = HOST
    port: int = PORT
    reload_path: str = RELOAD_PATH
    reload_message: str = RELOAD_MESSAGE
    debounce_ms: int = DEBOUNCE_MS
    max_delay_ms: int = MAX_DELAY_MS
    send_timeout: float = SEND_TIMEOUT

    @classmethod
    def from_entry(cls, entry_path: str, **overrides) -> "Settings":
        """Resolve the entry file and derive the served root from it"""
        try:
            path = Path(entry_path).expanduser().resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise EntryNotFoundError(f"Cannot resolve entry file {entry_path!r}: {e}") from e

        if not path.is_file():
            raise EntryNotFoundError(f"Entry {str(path)!r} is not a file")

        return cls(root=path.parent, entry=path.name, **overrides)

    @property
    def debounce(self) -> float:
        return max(self.debounce_ms, 0) / 1000

    @property
    def max_delay(self) -> float:
        return max(self.max_delay_ms, self.debounce_ms, 0) / 1000

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/{self.entry}"
