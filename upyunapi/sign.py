"""
又拍云请求签名。

头部签名：Authorization: UPYUN <operator>:<signature>，其中
signature = base64(HMAC-SHA1(password_md5, "METHOD&URI&DATE[&POLICY][&CONTENT-MD5]"))，
可选字段缺省时整段省略（不留空位）。

表单 API 签名：policy = base64(JSON 参数)，authorization 用同一算法对
"POST&/<bucket>&policy[&content-md5]" 计算。
"""

from __future__ import annotations

import json
import posixpath
import time
from email.utils import formatdate
from typing import Any
from urllib.parse import quote, unquote

from upyunapi import utils
from upyunapi.errors import ConfigurationError
from upyunapi.models import ServiceIdentity

SIGN_SCHEME = "UPYUN"

# 表单 policy 默认有效期（秒）
POLICY_EXPIRATION = 30 * 60

# encodeURI 的保留字符集去掉 # 和 ?（否则会被当作 fragment / query 截断）；签名串与实际请求路径必须一致
_ENCODE_URI_SAFE = ";,/:@&=+$-_.!~*'()"


def encode_uri(text: str) -> str:
    return quote(text, safe=_ENCODE_URI_SAFE)


def join_path(path: str) -> str:
    """以 / 为根规整路径：解析 . 与 ..、合并多余的 /，保留末尾 /，不会越过根。"""
    trailing = path.endswith("/") and path.strip("/") != ""
    normalized = "/" + posixpath.normpath("/" + path).lstrip("/")
    if trailing and normalized != "/":
        normalized += "/"
    return normalized


def canonical_path(path: str) -> str:
    """先解码一次、规整，再编码一次；对结果再次调用不会改变它。"""
    return encode_uri(join_path(unquote(path)))


def http_date(timestamp: float | None = None) -> str:
    """RFC 1123 日期，如 Wed, 29 Oct 2014 02:26:58 GMT。"""
    return formatdate(timestamp, usegmt=True)


def gen_sign(
    identity: ServiceIdentity,
    method: str,
    path: str,
    *,
    date: str | None = None,
    policy: str | None = None,
    content_md5: str | None = None,
) -> str:
    """
    生成签名串（可用于头部签名或表单签名）。

    path 中第一个 ? 之后是查询串，原样参与签名；对象名里的 ? 须事先编码为 %3F。
    """
    base, sep, query = path.partition("?")
    data = [method, encode_uri(unquote(base)) + sep + query]
    for item in (date, policy, content_md5):
        if item:
            data.append(item)
    signature = utils.hmac_sha1_base64("&".join(data), identity.password)
    return f"{SIGN_SCHEME} {identity.operator}:{signature}"


def header_sign(
    identity: ServiceIdentity,
    method: str,
    path: str,
    content_md5: str | None = None,
    *,
    date: str | None = None,
) -> dict[str, str]:
    """
    生成请求头签名。

    :param method: 请求方式，如 GET、PUT、HEAD、DELETE
    :param path: 存储路径，如 /bucket/dir/example.txt（需与实际请求路径一致）
    :param content_md5: 请求体 MD5，可为空
    :param date: 签名日期，缺省为当前时间（每次调用重新生成）
    :return: {"Authorization": ..., "Date": ...}，两者都要随请求发送
    """
    date = date or http_date()
    return {
        "Authorization": gen_sign(identity, method, path, date=date, content_md5=content_md5),
        "Date": date,
    }


def policy_and_authorization(
    identity: ServiceIdentity,
    params: dict[str, Any],
    *,
    now: float | None = None,
) -> dict[str, str]:
    """
    生成表单 API 的 policy 与 authorization，浏览器可凭此直传，无需经过后端中转。

    不修改传入的 params。

    :param params: 表单参数，必须包含 save-key；可含 expiration、content-md5 等
    :param now: 当前时间戳（秒），用于计算默认 expiration
    """
    if params.get("save-key") is None:
        raise ConfigurationError("form policy requires save-key")
    policy_params = {**params, "service": identity.bucket, "bucket": identity.bucket}
    if policy_params.get("expiration") is None:
        policy_params["expiration"] = int((time.time() if now is None else now) + POLICY_EXPIRATION)

    policy = utils.base64(json.dumps(policy_params, separators=(",", ":"), ensure_ascii=False))
    authorization = gen_sign(
        identity,
        "POST",
        f"/{identity.bucket}",
        policy=policy,
        content_md5=policy_params.get("content-md5"),
    )
    return {"policy": policy, "authorization": authorization}
