from __future__ import annotations

import os

import pytest

# Set env before any receipt_verifier imports (settings are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("BROWSER_POOL_SIZE", "2")


class FakeBrowser:
    def __init__(self, name: str) -> None:
        self.name = name
        self.alive = True
        self.closed = False

    def __repr__(self) -> str:
        return f"FakeBrowser({self.name})"


class FakeLauncher:
    def __init__(self) -> None:
        self.launched: list[FakeBrowser] = []
        self.closed: list[FakeBrowser] = []
        self.shutdown_calls = 0
        self.fail_next = False

    async def launch(self) -> FakeBrowser:
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("browser failed to start")
        browser = FakeBrowser(f"b{len(self.launched) + 1}")
        self.launched.append(browser)
        return browser

    async def is_alive(self, resource: FakeBrowser) -> bool:
        return resource.alive

    async def close(self, resource: FakeBrowser) -> None:
        resource.closed = True
        self.closed.append(resource)

    async def shutdown(self) -> None:
        self.shutdown_calls += 1


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()
