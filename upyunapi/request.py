"""
签名请求分发：路径规整 + 头部签名 + 发送。

只负责把 (path, method, headers, body) 变成一次带签名的 HTTP 请求；
不重试，也不对 404 等状态做业务上的解释（那是 UpyunClient 的事）。
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator

import httpx

from upyunapi.errors import TransportError, error_from_response
from upyunapi.models import ServiceIdentity
from upyunapi.sign import canonical_path, header_sign

logger = logging.getLogger(__name__)

Signer = Callable[..., dict[str, str]]


class Dispatcher:
    """
    持有一个 httpx.Client，按需创建；endpoint 形如 http://v0.api.upyun.com。
    """

    def __init__(
        self,
        endpoint: str,
        identity: ServiceIdentity,
        *,
        timeout: float = 30.0,
        verify: bool = True,
        transport: httpx.BaseTransport | None = None,
        sign: Signer = header_sign,
    ):
        if not endpoint or identity is None:
            raise ValueError("endpoint and identity are required")
        self.endpoint = endpoint.rstrip("/")
        self.identity = identity
        self.timeout = timeout
        self.verify = verify
        self._transport = transport
        self._sign = sign
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                base_url=self.endpoint,
                timeout=self.timeout,
                verify=self.verify,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        if self._client and not self._client.is_closed:
            self._client.close()
            self._client = None

    def build(
        self,
        path: str,
        method: str = "GET",
        *,
        headers: dict[str, str] | None = None,
        content: bytes | Iterable[bytes] | None = None,
        content_md5: str | None = None,
        query: str | None = None,
    ) -> httpx.Request:
        """
        构造带签名的请求。

        query 原样拼在规整后的路径之后（如 usage），并一起参与签名；
        路径里的 ? 一律编码，只有这里能产生查询串。
        签名头先生成，调用方 headers 再浅合并覆盖（同名时调用方优先）。
        """
        uri = canonical_path(path)
        if query:
            uri = f"{uri}?{query}"
        merged: dict[str, Any] = dict(self._sign(self.identity, method, uri, content_md5))
        if content_md5:
            merged["Content-MD5"] = content_md5
        merged.update(headers or {})
        return self._get_client().build_request(method, uri, headers=merged, content=content)

    def _send(self, req: httpx.Request, *, stream: bool = False) -> httpx.Response:
        logger.debug("%s %s", req.method, req.url.raw_path.decode("ascii", "replace"))
        try:
            return self._get_client().send(req, stream=stream)
        except httpx.HTTPError as exc:
            raise TransportError(f"{req.method} {req.url}: {exc}") from exc

    def request(self, path: str, method: str = "GET", **kwargs: Any) -> httpx.Response:
        """发送请求并读完响应体；非 2xx 抛出 TransportError（或其子类）。"""
        r = self._send(self.build(path, method, **kwargs))
        if not r.is_success:
            raise error_from_response(r)
        return r

    @contextmanager
    def stream(self, path: str, method: str = "GET", **kwargs: Any) -> Iterator[httpx.Response]:
        """流式请求：返回未读取响应体的 Response，不检查状态码；退出时关闭连接。"""
        r = self._send(self.build(path, method, **kwargs), stream=True)
        try:
            yield r
        finally:
            r.close()
