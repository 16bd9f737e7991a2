"""Shared fixtures: a scriptable fake node binary and a fake clock."""

import stat
import sys
import textwrap
from pathlib import Path

import pytest

FAKE_NODE_VERSION = "2.0.0-test"
FAKE_PEER_COUNT = 7

# Behaviour is selected with the FAKE_NODE_MODE environment variable:
#   serve        answer eth_blockNumber / net_peerCount on --jsonrpc-port
#   no-rpc       stay alive without listening
#   crash        write to stderr and exit with status 3
#   ignore-term  ignore SIGTERM and stay alive
#   no-version   print nothing for --version
_FAKE_NODE_SOURCE = textwrap.dedent(
    """\
    import json
    import os
    import signal
    import sys
    import time
    from http.server import BaseHTTPRequestHandler, HTTPServer

    MODE = os.environ.get("FAKE_NODE_MODE", "serve")
    START = time.monotonic()

    if "--version" in sys.argv:
        if MODE != "no-version":
            print("Parity/v{version} version {version}")
        sys.exit(0)

    if MODE == "crash":
        sys.stderr.write("boom: database corrupted\\n")
        sys.exit(3)

    if MODE == "ignore-term":
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    if MODE != "serve":
        while True:
            time.sleep(0.1)


    class Handler(BaseHTTPRequestHandler):
        def do_POST(self):
            length = int(self.headers.get("Content-Length", 0))
            request = json.loads(self.rfile.read(length))
            if request["method"] == "eth_blockNumber":
                result = hex(1000 + int((time.monotonic() - START) * 50))
            elif request["method"] == "net_peerCount":
                result = hex({peers})
            else:
                result = None
            body = json.dumps(
                {{"jsonrpc": "2.0", "id": request["id"], "result": result}}
            ).encode()
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, *args):
            pass


    port = int(sys.argv[sys.argv.index("--jsonrpc-port") + 1])
    HTTPServer(("127.0.0.1", port), Handler).serve_forever()
    """
).format(version=FAKE_NODE_VERSION, peers=FAKE_PEER_COUNT)


@pytest.fixture
def fake_node(tmp_path: Path) -> Path:
    """Path to an executable fake node script."""
    if sys.platform == "win32":
        pytest.skip("fake node relies on a shebang line")
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "fake-parity"
    script.write_text(f"#!{sys.executable}\n{_FAKE_NODE_SOURCE}", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """A node data folder with a small ``chains`` subdirectory."""
    data = tmp_path / "data"
    chain_db = data / "chains" / "ethereum" / "db"
    chain_db.mkdir(parents=True)
    (chain_db / "CURRENT").write_text("MANIFEST-000001\n", encoding="utf-8")
    return data


class FakeClock:
    """Stands in for the ``time`` module: ``sleep`` advances ``monotonic``."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
