import pytest
from fastapi.testclient import TestClient

from liveserver.config import Settings
from liveserver.main import create_app

INDEX_HTML = b"""<!DOCTYPE html>
<html>
<head><title>Demo</title><link rel="stylesheet" href="style.css"></head>
<body>
<h1>Hello</h1>
</body>
</html>
"""

STYLE_CSS = b"body { color: #333; }\n"


@pytest.fixture
def site(tmp_path):
    """Served root with an entry document, a stylesheet and a subdirectory"""
    (tmp_path / "index.html").write_bytes(INDEX_HTML)
    (tmp_path / "style.css").write_bytes(STYLE_CSS)
    (tmp_path / "js").mkdir()
    (tmp_path / "js" / "app.js").write_bytes(b"console.log('app');\n")
    return tmp_path


@pytest.fixture
def settings(site):
    return Settings.from_entry(str(site / "index.html"), debounce_ms=50, max_delay_ms=200)


@pytest.fixture
def app(settings):
    return create_app(settings, watch=False)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
