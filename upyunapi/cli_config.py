"""
CLI 认证配置：本地保存/读取操作员、密码、服务名等。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

REQUIRED_KEYS = ("operator", "password", "bucket")
OPTIONAL_KEYS = ("host", "api_secret", "domain", "protocol", "kind")


def _config_dir() -> Path:
    """配置目录：~/.config/upyunapi（所有平台统一）。"""
    return Path.home() / ".config" / "upyunapi"


def _config_path() -> Path:
    return _config_dir() / "config.json"


def load_config() -> dict[str, Any] | None:
    """读取本地配置；不存在、无效或缺少必填项则返回 None。"""
    p = _config_path()
    if not p.exists():
        return None
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict) or not all(data.get(k) for k in REQUIRED_KEYS):
        return None
    return data


def save_config(operator: str, password: str, bucket: str, **optional: str | None) -> None:
    """保存认证信息到本地；optional 仅接受 OPTIONAL_KEYS 中的键，值为 None 的不写入。"""
    unknown = set(optional) - set(OPTIONAL_KEYS)
    if unknown:
        raise ValueError(f"unknown config keys: {', '.join(sorted(unknown))}")
    p = _config_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    data: dict[str, Any] = {"operator": operator, "password": password, "bucket": bucket}
    data.update({k: v for k, v in optional.items() if v is not None})
    p.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def clear_config() -> bool:
    """清除本地配置；存在则删除并返回 True。"""
    p = _config_path()
    if p.exists():
        p.unlink()
        return True
    return False
