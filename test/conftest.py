from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from collections import Counter
from threading import Thread
from zipfile import ZipFile
from io import BytesIO
import urllib.parse
import hashlib
import pytest

from typing import Dict, Tuple


def pytest_addoption(parser):
    parser.addoption("--runslow", action="store_true", default=False, help="run slow tests")

def pytest_configure(config):
    config.addinivalue_line("markers", "slow: mark test as slow to run")

def pytest_collection_modifyitems(config, items):

    if config.getoption("--runslow"):
        return

    skip_slow = pytest.mark.skip(reason="need --runslow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)

@pytest.fixture(scope = "session")
def tmp_context(tmp_path_factory):
    """This fixture is used to create an instance's context global to test session.
    """

    from instancemc.standard import Context
    return Context(tmp_path_factory.mktemp("context"))

@pytest.fixture
def context(tmp_path):
    """A fresh instance's context for a single test.
    """

    from instancemc.standard import Context
    return Context(tmp_path / "main", "test")

@pytest.fixture
def file_server():
    """A local HTTP server serving in-memory files, used to test downloads without
    network access.
    """

    server = FileServer()
    thread = Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


def sha1_of(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()

def make_zip(files: Dict[str, bytes]) -> bytes:
    buffer = BytesIO()
    with ZipFile(buffer, "w") as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return buffer.getvalue()


class FileServer(ThreadingHTTPServer):

    daemon_threads = True

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), FileRequestHandler)
        self.files: Dict[str, bytes] = {}
        self.statuses: Dict[str, int] = {}
        self.redirects: Dict[str, str] = {}
        self.hits: Counter = Counter()

    @property
    def base_url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def serve(self, path: str, data: bytes) -> Tuple[str, str]:
        """Serve the given data and return its URL and SHA-1.
        """
        self.files[path] = data
        return self.url(path), sha1_of(data)


class FileRequestHandler(BaseHTTPRequestHandler):

    protocol_version = "HTTP/1.1"

    def log_message(self, format, *args):
        pass

    def do_GET(self):

        server: FileServer = self.server
        path = urllib.parse.urlsplit(self.path).path
        server.hits[path] += 1

        if path in server.redirects:
            self.send_body(302, b"", location=server.redirects[path])
        elif path in server.statuses:
            self.send_body(server.statuses[path], b"error")
        elif path in server.files:
            self.send_body(200, server.files[path])
        else:
            self.send_body(404, b"not found")

    def send_body(self, status: int, body: bytes, location: str = None):
        self.send_response(status)
        self.send_header("Content-Length", str(len(body)))
        if location is not None:
            self.send_header("Location", location)
        self.end_headers()
        self.wfile.write(body)
