"""
又拍云存储 (UPYUN USS) Python API 客户端。

基于又拍云 REST API 与表单 API 实现：用量查询、目录列表、上传下载、
删除（含非空目录递归删除）以及浏览器直传所需的 policy 签名。
"""

from __future__ import annotations

import json
import logging
import os
import posixpath
import threading
import time
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Iterable, Iterator
from urllib.parse import unquote

import httpx

from upyunapi import utils
from upyunapi.errors import (
    ConfigurationError,
    DangerousOperationError,
    NotFoundError,
    OperationCancelledError,
    RateLimitedError,
    TransientFolderNotEmptyError,
    UpyunError,
    error_from_response,
)
from upyunapi.models import (
    END_OF_LISTING,
    DeleteResult,
    DirEntry,
    ListDirResult,
    ServiceIdentity,
    dir_entry_from_api,
    entry_is_folder,
)
from upyunapi.request import Dispatcher
from upyunapi.sign import POLICY_EXPIRATION, join_path, policy_and_authorization

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = "v0.api.upyun.com"
DEFAULT_PROTOCOL = "http"
# 表单上传默认保存路径模板
DEFAULT_SAVE_KEY = "/{filemd5}{.suffix}"

DELETE_RETRIES = 3
DELETE_RETRY_DELAY = 4.0

_JSON_HEADERS = {"Accept": "application/json"}


def _flag(value: bool) -> str:
    return "true" if value else "false"


@dataclass
class _DirFrame:
    """delete_dir 工作栈中的一个目录：当前页剩余条目与该页返回的游标。"""

    path: str
    next: str | None = None
    entries: Iterator[DirEntry] | None = None
    page_next: str | None = None
    processed: int = 0


class UpyunClient:
    """
    又拍云存储客户端。

    认证方式：每个请求都带 UPYUN 头部签名（操作员 + 密码 MD5 做 HMAC-SHA1）。
    示例： UpyunClient("operator", "password", "my-bucket", host="cdn.example.com")
    """

    def __init__(
        self,
        operator: str,
        password: str,
        bucket: str,
        *,
        kind: str = "oss",
        host: str | None = None,
        api_secret: str | None = None,
        domain: str = DEFAULT_DOMAIN,
        protocol: str = DEFAULT_PROTOCOL,
        timeout: float = 30.0,
        verify: bool = True,
        transport: httpx.BaseTransport | None = None,
        retry_delay: float = DELETE_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        :param operator: 操作员名
        :param password: 操作员密码（kind 为 knowledge 时传已哈希的值）
        :param bucket: 服务（存储分区）名
        :param host: 绑定的访问域名，用于拼接上传后的文件地址
        :param api_secret: 表单 API 密钥，仅 get_policy_and_signature 需要
        :param domain: API 域名
        :param protocol: http 或 https
        :param timeout: 单次请求超时秒数
        :param transport: 自定义 httpx transport（测试时传 httpx.MockTransport）
        :param retry_delay: 删除遇到限频/服务端错误时每次重试前等待的秒数
        """
        missing = [name for name, value in (("operator", operator), ("password", password), ("bucket", bucket)) if not value]
        if missing:
            raise ConfigurationError(f"missing required parameter(s): {', '.join(missing)}")
        if not domain or not protocol:
            raise ConfigurationError("domain and protocol are required")
        self.identity = ServiceIdentity.create(
            operator, password, bucket, host=host, api_secret=api_secret, kind=kind
        )
        self.domain = domain
        self.endpoint = f"{protocol}://{domain}"
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._dispatcher = Dispatcher(
            self.endpoint,
            self.identity,
            timeout=timeout,
            verify=verify,
            transport=transport,
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> UpyunClient:
        """从 UPYUN_* 环境变量构造；kwargs 覆盖同名参数。"""
        env = {
            "operator": os.getenv("UPYUN_OPERATOR", ""),
            "password": os.getenv("UPYUN_PASSWORD", ""),
            "bucket": os.getenv("UPYUN_BUCKET", ""),
            "host": os.getenv("UPYUN_HOST") or None,
            "api_secret": os.getenv("UPYUN_API_SECRET") or None,
            "domain": os.getenv("UPYUN_DOMAIN") or DEFAULT_DOMAIN,
            "protocol": os.getenv("UPYUN_PROTOCOL") or DEFAULT_PROTOCOL,
        }
        env.update(kwargs)
        operator, password, bucket = env.pop("operator"), env.pop("password"), env.pop("bucket")
        return cls(operator, password, bucket, **env)

    @property
    def bucket(self) -> str:
        return self.identity.bucket

    def close(self) -> None:
        """关闭底层 HTTP 客户端。"""
        self._dispatcher.close()

    def __enter__(self) -> UpyunClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _remote_path(self, path: str) -> str:
        return f"/{self.bucket}/{(path or '').lstrip('/')}"

    # ------------------------- 用量与列表 -------------------------

    def usage(self) -> int:
        """当前服务已用空间（字节）。"""
        r = self._dispatcher.request(f"/{self.bucket}/", headers=_JSON_HEADERS, query="usage")
        return int(r.json())

    def list_dir(
        self,
        path: str = "/",
        *,
        limit: int = 100,
        order: str = "asc",
        iter: str | None = "",
    ) -> ListDirResult:
        """
        获取目录下一页文件/文件夹列表。

        目录不存在（404）时视为空目录且已无下一页：{"files": [], "next": END_OF_LISTING}。

        :param path: 目录路径，如 "/" 或 "/images/2024"
        :param limit: 每页条数，默认 100，最大 10000
        :param order: asc 或 desc，按文件名排序
        :param iter: 分页游标，取上一页返回的 next；第一页留空
        :return: {"files": [DirEntry], "next": 下一页游标}
        """
        headers = {
            **_JSON_HEADERS,
            "x-list-limit": str(limit),
            "x-list-order": order,
            "x-list-iter": iter or "",
        }
        try:
            r = self._dispatcher.request(self._remote_path(path), headers=headers)
        except NotFoundError:
            return {"files": [], "next": END_OF_LISTING}
        data = r.json() if r.content else {}
        if not isinstance(data, dict):
            data = {}
        # files 可能是数组、空对象或缺失，后两种都按空列表处理
        files = data.get("files") or []
        cursor = data.get("iter") or r.headers.get("x-upyun-list-iter") or END_OF_LISTING
        return {
            "files": [dir_entry_from_api(f) for f in files],
            "next": cursor,
        }

    def iter_dir(self, path: str = "/", *, limit: int = 100, order: str = "asc") -> Iterator[DirEntry]:
        """逐页跟随游标，产出目录下的全部条目（不递归子目录）。"""
        cursor = ""
        while True:
            page = self.list_dir(path, limit=limit, order=order, iter=cursor)
            yield from page["files"]
            cursor = page["next"]
            if cursor == END_OF_LISTING:
                return

    # ------------------------- 上传 -------------------------

    UPLOAD_CHUNK_SIZE = 1024 * 1024  # 1 MiB，流式上传块大小

    def put_file(self, path: str, data: bytes, *, content_md5: str | None = None) -> httpx.Response:
        """
        上传文件（整块 body）。

        :param path: 远程文件路径，如 "/avatars/1.jpg"
        :param data: 文件内容
        :param content_md5: 可选，内容 MD5；提供时服务端会校验，并参与签名
        """
        return self._dispatcher.request(self._remote_path(path), "PUT", content=data, content_md5=content_md5)

    def _stream_body(
        self,
        source: BinaryIO | Iterable[bytes],
        on_progress: Callable[[int, int], None] | None,
    ) -> tuple[Iterator[bytes], dict[str, str]]:
        """可 seek 的文件对象按块读取并带 Content-Length；其他可迭代对象原样分块发送。"""
        headers: dict[str, str] = {}
        size = 0
        if hasattr(source, "read"):
            try:
                source.seek(0, 2)
                size = source.tell()
                source.seek(0)
                headers["Content-Length"] = str(size)
            except (AttributeError, OSError):
                size = 0
            read = source.read
            chunks: Iterable[bytes] = iter(lambda: read(self.UPLOAD_CHUNK_SIZE), b"")
        else:
            chunks = source

        def stream_chunks() -> Iterator[bytes]:
            sent = 0
            for chunk in chunks:
                sent += len(chunk)
                if on_progress:
                    on_progress(sent, size)
                yield chunk

        return stream_chunks(), headers

    def put_stream(
        self,
        path: str,
        source: BinaryIO | Iterable[bytes],
        *,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> httpx.Response:
        """
        流式上传大文件，不整文件读入内存。

        :param source: 二进制文件对象，或产出 bytes 块的可迭代对象
        :param on_progress: 可选，每块发送后调用 on_progress(已发送字节, 总字节)；总大小未知时为 0
        """
        body, headers = self._stream_body(source, on_progress)
        return self._dispatcher.request(self._remote_path(path), "PUT", content=body, headers=headers)

    # ------------------------- 查询与下载 -------------------------

    def is_exist_file(self, path: str = "/") -> httpx.Response | bool:
        """HEAD 检查文件是否存在；不存在返回 False，存在返回响应（含 x-upyun-file-* 头）。"""
        try:
            return self._dispatcher.request(self._remote_path(path), "HEAD")
        except NotFoundError:
            return False

    def get_file(self, path: str) -> bytes:
        """下载文件，返回原始字节。文件不存在时抛出 NotFoundError。"""
        return self._dispatcher.request(self._remote_path(path)).content

    def get_file_stream(
        self,
        path: str,
        destination: BinaryIO,
        *,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> int:
        """
        流式下载到可写对象。

        仅在状态码为 200 时写入 destination；否则不写任何内容并抛出对应异常。

        :return: 写入的字节数
        """
        with self._dispatcher.stream(self._remote_path(path)) as r:
            if r.status_code != 200:
                r.read()
                raise error_from_response(r)
            total = int(r.headers.get("content-length") or 0)
            written = 0
            for chunk in r.iter_bytes():
                destination.write(chunk)
                written += len(chunk)
                if on_progress:
                    on_progress(written, total)
        return written

    # ------------------------- 删除 -------------------------

    def _wait(self, cancel: threading.Event | None) -> None:
        if cancel is None:
            self._sleep(self.retry_delay)
        elif cancel.wait(self.retry_delay):
            raise OperationCancelledError("cancelled during retry backoff")

    @staticmethod
    def _should_retry(err: UpyunError, *, is_async: bool, is_folder: bool) -> bool:
        if isinstance(err, RateLimitedError):
            return True
        # 同步删除空目录时偶发删不掉，隔几秒重试即可
        if isinstance(err, TransientFolderNotEmptyError):
            return is_folder and not is_async
        return err.status_code is not None and err.status_code > 500

    def _delete(
        self,
        path: str,
        *,
        is_async: bool = False,
        is_folder: bool = False,
        retries: int = DELETE_RETRIES,
        cancel: threading.Event | None = None,
    ) -> DeleteResult:
        """
        删除文件或空目录，限频 (429)、服务端错误 (>500)、同步删目录时的
        403 directory not empty 会等待 retry_delay 秒后重试，最多 retries 次。

        :return: DELETED / ALREADY_ABSENT（404）/ GAVE_UP（重试耗尽，未确认删除）
        """
        headers = {"x-upyun-async": _flag(is_async), "x-upyun-folder": _flag(is_folder)}
        remote = self._remote_path(path)
        if retries < 0:
            return DeleteResult.GAVE_UP
        while True:
            try:
                self._dispatcher.request(remote, "DELETE", headers=headers)
                return DeleteResult.DELETED
            except NotFoundError:
                return DeleteResult.ALREADY_ABSENT
            except UpyunError as e:
                if not self._should_retry(e, is_async=is_async, is_folder=is_folder):
                    raise
                if retries <= 0:
                    logger.warning("giving up deleting %s after %s: retries exhausted", remote, e.status_code)
                    return DeleteResult.GAVE_UP
                logger.warning("delete %s failed with %s, retrying (%d left)", remote, e.status_code, retries)
            self._wait(cancel)
            retries -= 1

    def delete_file(
        self, path: str, is_async: bool = False, *, cancel: threading.Event | None = None
    ) -> DeleteResult:
        """删除文件。"""
        return self._delete(path, is_async=is_async, cancel=cancel)

    def delete_empty_dir(
        self, path: str, is_async: bool = False, *, cancel: threading.Event | None = None
    ) -> DeleteResult:
        """删除空目录（异步方式服务端可能不执行，建议同步）。"""
        return self._delete(path, is_async=is_async, is_folder=True, cancel=cancel)

    def delete_dir(
        self,
        path: str,
        is_async: bool = False,
        next: str | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> DeleteResult:
        """
        递归删除非空目录。

        按列表顺序逐个处理条目（不并发）：子目录先整棵删完再处理下一项，文件直接删除。
        一页处理完后若游标不是结束标记，则从头重新列该目录而不是沿游标继续，
        因为删除会让服务端的分页偏移发生变化，沿游标会漏项。代价是大目录会被反复
        从头扫描。整轮扫描以结束标记收尾后，再删除已空的目录本身。

        :param path: 目录路径，不能是根目录
        :param is_async: 是否使用异步删除
        :param next: 首次列表的起始游标
        :param cancel: 可选，set() 后在下一个条目/等待处抛出 OperationCancelledError
        :return: 目录本身的删除结果
        """
        if join_path(unquote((path or "").strip())) == "/":
            raise DangerousOperationError(f"refusing to delete storage root: {path!r}")

        stack = [_DirFrame(path, next)]
        while True:
            frame = stack[-1]
            if cancel is not None and cancel.is_set():
                raise OperationCancelledError(f"delete_dir cancelled at {frame.path}")
            if frame.entries is None:
                page = self.list_dir(frame.path, iter=frame.next)
                frame.entries = iter(page["files"])
                frame.page_next = page["next"]
                frame.processed = 0

            descended = False
            for entry in frame.entries:
                if cancel is not None and cancel.is_set():
                    raise OperationCancelledError(f"delete_dir cancelled at {frame.path}")
                frame.processed += 1
                child = posixpath.join(frame.path, entry["name"])
                if entry_is_folder(entry):
                    stack.append(_DirFrame(child))
                    descended = True
                    break
                self.delete_file(child, is_async, cancel=cancel)
            if descended:
                continue

            # 从头列出的一页为空说明目录已空，即使游标不是结束标记也不再重扫
            restart = frame.processed > 0 or frame.next is not None
            if frame.page_next != END_OF_LISTING and restart:
                frame.entries = None
                frame.next = None
                continue

            if cancel is not None and cancel.is_set():
                raise OperationCancelledError(f"delete_dir cancelled at {frame.path}")
            result = self.delete_empty_dir(frame.path, is_async, cancel=cancel)
            logger.info("removed directory %s (%s)", frame.path, result.value)
            stack.pop()
            if not stack:
                return result

    # ------------------------- 表单 API（浏览器直传） -------------------------

    def get_policy_and_signature(
        self,
        params: dict[str, Any] | None = None,
        *,
        now: float | None = None,
    ) -> dict[str, Any]:
        """
        表单 API 旧版签名：signature = md5(policy & api_secret)。

        :param params: 表单参数；save-key 默认 /{filemd5}{.suffix}，expiration 默认 30 分钟后
        :return: policy, signature, file（保存路径）, upload_uri, file_path
        """
        secret = self.identity.api_secret
        if not secret:
            raise ConfigurationError("api_secret is required for form signature")
        policy_params = dict(params or {})
        policy_params["bucket"] = self.bucket
        policy_params["save-key"] = join_path(policy_params.get("save-key") or DEFAULT_SAVE_KEY)
        if policy_params.get("expiration") is None:
            policy_params["expiration"] = int((time.time() if now is None else now) + POLICY_EXPIRATION)

        policy = utils.base64(json.dumps(policy_params, separators=(",", ":"), ensure_ascii=False))
        save_key = policy_params["save-key"]
        return {
            "policy": policy,
            "signature": utils.md5(f"{policy}&{secret}"),
            "file": save_key,
            "upload_uri": f"{self.domain}/{self.bucket}",
            "file_path": self._file_url(save_key),
        }

    def get_policy_and_authorization(
        self,
        params: dict[str, Any] | None = None,
        *,
        now: float | None = None,
    ) -> dict[str, Any]:
        """
        表单 API 新版签名（与头部签名同一算法）。params 必须包含 save-key。

        :return: upload_uri, policy, authorization, file_path
        """
        params = dict(params or {})
        signed = policy_and_authorization(self.identity, params, now=now)
        return {
            "upload_uri": f"{self.domain}/{self.bucket}",
            **signed,
            "file_path": self._file_url(params["save-key"]),
        }

    def _file_url(self, save_key: str) -> str | None:
        if not self.identity.host:
            return None
        return f"https://{self.identity.host}{save_key}"
