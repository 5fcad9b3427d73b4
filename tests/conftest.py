"""Shared pytest fixtures."""

import json

import pytest


class FakeSocket:
    """Stands in for a plugin WebSocket: records decoded outbound frames."""

    def __init__(self, *, fail_sends: bool = False):
        self.sent = []
        self.closed = None
        self.fail_sends = fail_sends

    async def send_text(self, text):
        if self.fail_sends:
            raise RuntimeError("socket gone")
        self.sent.append(json.loads(text))

    async def close(self, code=1000, reason=""):
        self.closed = (code, reason)

    def frames(self, frame_type):
        return [f for f in self.sent if f.get("type") == frame_type]

    def commands(self):
        return [c for f in self.frames("commands") for c in f["data"]]


@pytest.fixture
def make_socket():
    return FakeSocket
