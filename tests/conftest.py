"""
Brief: Global pytest configuration: src on sys.path, per-test 10s timeout,
and a local UDP stub master server.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import os
import signal
import socket
import sys
import threading
import time

import pytest

# Ensure 'src' is on sys.path so 'sourcemaster' is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


class MasterStub:
    """
    Brief: UDP server on 127.0.0.1 that answers every datagram via a handler.

    Inputs:
      - handler: callable(request_bytes) -> bytes or None (None = stay silent)

    Outputs:
      - MasterStub with .address ('127.0.0.1:port') and .requests (received payloads)
    """

    def __init__(self, handler):
        self.handler = handler
        self.requests = []
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        host, port = self.sock.getsockname()
        self.address = f"{host}:{port}"
        self._stop = False
        self.thread = threading.Thread(target=self._loop, daemon=True)

    def start(self):
        self.thread.start()
        time.sleep(0.02)
        return self

    def _loop(self):
        while not self._stop:
            try:
                self.sock.settimeout(0.2)
                data, peer = self.sock.recvfrom(65535)
            except OSError:
                continue
            self.requests.append(data)
            reply = self.handler(data)
            if reply is None:
                continue
            try:
                self.sock.sendto(reply, peer)
            except OSError:
                pass

    def close(self):
        self._stop = True
        self.thread.join(timeout=1.0)
        self.sock.close()


@pytest.fixture
def master_stub():
    """
    Brief: Factory fixture starting MasterStub instances, closed at teardown.

    Inputs:
      - None

    Outputs:
      - callable(handler) -> started MasterStub
    """
    stubs = []

    def _make(handler):
        stub = MasterStub(handler).start()
        stubs.append(stub)
        return stub

    yield _make
    for stub in stubs:
        stub.close()


@pytest.fixture
def restore_root_logger():
    """
    Brief: Put the root logger's handlers and level back after init_logging().

    Inputs:
      - None

    Outputs:
      - None
    """
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        if h not in handlers:
            h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
