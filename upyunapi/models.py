"""
又拍云 API 数据模型。

- ServiceIdentity：账户/服务身份，构造后不可变；密码只保存 MD5 摘要。
- DirEntry：list_dir 返回的 files 中每一项
  name=名称, type=file|folder, size=大小(字节), time=最后修改时间(毫秒时间戳)
- ListDirResult：{"files": [DirEntry], "next": 分页游标}
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from upyunapi import utils

# 列表分页结束标记：服务端返回的 iter 等于此值表示没有下一页
END_OF_LISTING = "g2gCZAAEbmV4dGQAA2VvZg"

# 密码已是摘要的账户类型
KIND_KNOWLEDGE = "knowledge"

DirEntry = dict[str, Any]

ListDirResult = dict[str, Any]


@dataclass(frozen=True)
class ServiceIdentity:
    """签名所需的服务身份。password 字段存放的是密码摘要，不是明文。"""

    operator: str
    password: str
    bucket: str
    host: str | None = None
    api_secret: str | None = None
    kind: str = "oss"

    @classmethod
    def create(
        cls,
        operator: str,
        password: str,
        bucket: str,
        *,
        host: str | None = None,
        api_secret: str | None = None,
        kind: str = "oss",
    ) -> ServiceIdentity:
        """由明文密码构造；kind 为 knowledge 时密码视为已哈希，原样保存。"""
        digest = password if kind == KIND_KNOWLEDGE else utils.md5(password)
        return cls(operator=operator, password=digest, bucket=bucket, host=host, api_secret=api_secret, kind=kind)


class DeleteResult(enum.Enum):
    """删除结果。仅 GAVE_UP 为假值（重试耗尽，无法确认已删除）。"""

    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"
    GAVE_UP = "gave_up"

    def __bool__(self) -> bool:
        return self is not DeleteResult.GAVE_UP


def dir_entry_from_api(raw: dict[str, Any]) -> DirEntry:
    """将服务端 files 中的一项转换为 DirEntry。"""
    return {
        "name": raw.get("name", ""),
        "type": "folder" if raw.get("type") == "folder" else "file",
        "size": int(raw.get("length") or 0),
        "time": int(raw.get("last_modified") or 0) * 1000,
    }


def entry_is_folder(entry: DirEntry) -> bool:
    return entry.get("type") == "folder"


def entry_size(entry: DirEntry) -> int:
    """条目大小（字节），文件夹一般为 0。"""
    return int(entry.get("size") or 0)


def entry_modified(entry: DirEntry) -> int:
    """条目最后修改时间（毫秒时间戳）。"""
    return int(entry.get("time") or 0)
