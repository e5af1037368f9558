"""
哈希 / HMAC / base64 小工具（文本一律按 UTF-8 编码）。
"""

from __future__ import annotations

import base64 as _b64
import hashlib
import hmac


def md5(text: str) -> str:
    """MD5 十六进制摘要。"""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def sha1(text: str) -> str:
    """SHA-1 十六进制摘要。"""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def base64(text: str) -> str:
    return _b64.b64encode(text.encode("utf-8")).decode("ascii")


def hmac_sha1_base64(text: str, secret: str) -> str:
    """以 secret 为密钥计算 HMAC-SHA1，结果做 base64 编码。"""
    digest = hmac.new(secret.encode("utf-8"), text.encode("utf-8"), hashlib.sha1).digest()
    return _b64.b64encode(digest).decode("ascii")
