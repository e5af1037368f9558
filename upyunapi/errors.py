"""
又拍云 API 异常类型。

TransportError 及其子类携带 status_code（网络错误时为 None）与服务端返回的 msg。
"""

from __future__ import annotations

from typing import Any

import httpx

# 同步删除文件夹时，服务端偶发返回 403 + 此消息（文件刚删完，目录尚未被认为为空）
DIRECTORY_NOT_EMPTY = "directory not empty"


class UpyunError(Exception):
    """所有 upyunapi 异常的基类。"""

    def __init__(self, message: str = "", *, status_code: int | None = None, msg: str | None = None, body: Any = None):
        super().__init__(message or msg or "")
        self.status_code = status_code
        self.msg = msg
        self.body = body


class ConfigurationError(UpyunError):
    """缺少必填的账户/服务参数，或构造表单 policy 时缺少 save-key。"""


class DangerousOperationError(UpyunError):
    """对存储根目录执行递归删除。"""


class OperationCancelledError(UpyunError):
    """调用方通过 cancel 事件中止了操作。"""


class TransportError(UpyunError):
    """非 2xx 响应或网络错误。"""


class NotFoundError(TransportError):
    pass


class RateLimitedError(TransportError):
    pass


class ServerError(TransportError):
    pass


class TransientFolderNotEmptyError(TransportError):
    """403 directory not empty：文件删除与目录判空之间的最终一致性延迟。"""


def _response_message(response: httpx.Response) -> tuple[str, Any]:
    """返回 (msg, body)；JSON 体优先取 msg 字段，否则取原始文本。"""
    try:
        body: Any = response.json()
    except Exception:
        body = response.text
    if isinstance(body, dict):
        return str(body.get("msg") or body.get("message") or ""), body
    return (body or "").strip() if isinstance(body, str) else "", body


def error_from_response(response: httpx.Response) -> TransportError:
    """将非 2xx 响应映射为具体异常类型（不抛出，由调用方 raise）。"""
    status = response.status_code
    msg, body = _response_message(response)
    text = f"{response.request.method} {response.request.url.raw_path.decode('ascii', 'replace')}: {status} {msg}".rstrip()
    if status == 404:
        cls: type[TransportError] = NotFoundError
    elif status == 429:
        cls = RateLimitedError
    elif status >= 500:
        cls = ServerError
    elif status == 403 and DIRECTORY_NOT_EMPTY in msg:
        cls = TransientFolderNotEmptyError
    else:
        cls = TransportError
    return cls(text, status_code=status, msg=msg, body=body)
