"""
pytest 配置与共享 fixture。

fake：按 (method, path) 排队返回响应的模拟又拍云服务，记录收到的所有请求。
client：接在 fake 上的 UpyunClient，重试等待不真正 sleep，而是记录到 sleeps。
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Callable, Iterator

import httpx
import pytest

from upyunapi import UpyunClient

from tests.config import (
    UPYUN_API_SECRET,
    UPYUN_BUCKET,
    UPYUN_HOST,
    UPYUN_OPERATOR,
    UPYUN_PASSWORD,
)


class FakeUpyun:
    """
    路由表：同一 (method, path) 可排多个响应，依次返回，最后一个会一直重复。
    path 为请求的 raw path（已编码，含 query），如 /demo-bucket/dir 或 /demo-bucket/?usage。
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], deque[Callable[[httpx.Request], httpx.Response]]] = defaultdict(deque)
        self.fallback: Callable[[httpx.Request], httpx.Response] | None = None

    def add(self, method: str, path: str, status: int = 200, **kwargs: Any) -> FakeUpyun:
        self._routes[(method, path)].append(lambda request: httpx.Response(status, **kwargs))
        return self

    def add_error(self, method: str, path: str, exc: Exception) -> FakeUpyun:
        def raise_exc(request: httpx.Request) -> httpx.Response:
            raise exc

        self._routes[(method, path)].append(raise_exc)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        key = (request.method, request.url.raw_path.decode("ascii"))
        queue = self._routes.get(key)
        if queue:
            respond = queue.popleft() if len(queue) > 1 else queue[0]
            return respond(request)
        if self.fallback is not None:
            return self.fallback(request)
        raise AssertionError(f"unexpected request: {key}")

    def calls(self) -> list[tuple[str, str]]:
        return [(r.method, r.url.raw_path.decode("ascii")) for r in self.requests]


@pytest.fixture
def fake() -> FakeUpyun:
    return FakeUpyun()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def client(fake: FakeUpyun, sleeps: list[float]) -> Iterator[UpyunClient]:
    """接在 fake 上的客户端；retry_delay 保持默认 4 秒，但等待只记录不执行。"""
    c = UpyunClient(
        UPYUN_OPERATOR,
        UPYUN_PASSWORD,
        UPYUN_BUCKET,
        host=UPYUN_HOST,
        api_secret=UPYUN_API_SECRET,
        transport=httpx.MockTransport(fake.handler),
        sleep=sleeps.append,
    )
    yield c
    c.close()
