"""
哈希工具单元测试（对照公开测试向量）。
"""

from __future__ import annotations

import base64

from upyunapi import utils


def test_md5_hex() -> None:
    assert utils.md5("") == "d41d8cd98f00b204e9800998ecf8427e"
    assert utils.md5("abc") == "900150983cd24fb0d6963f7d28e17f72"


def test_sha1_hex() -> None:
    assert utils.sha1("abc") == "a9993e364706816aba3e25717850c26c9cd0d89d"


def test_base64_utf8() -> None:
    assert utils.base64("hello") == "aGVsbG8="
    assert base64.b64decode(utils.base64("你好")).decode("utf-8") == "你好"


def test_hmac_sha1_base64_known_vector() -> None:
    """RFC 2104 常用向量：key="key"，quick brown fox。"""
    expected = base64.b64encode(bytes.fromhex("de7c9b85b8b78aa6bc8a7a36f70a90701c9db4d9")).decode("ascii")
    assert utils.hmac_sha1_base64("The quick brown fox jumps over the lazy dog", "key") == expected
