"""
CLI 认证配置（cli_config）单元测试。账户均从 tests.config 读取。
"""

from __future__ import annotations

import pytest

from upyunapi.cli_config import clear_config, load_config, save_config

from tests.config import UPYUN_BUCKET, UPYUN_HOST, UPYUN_OPERATOR, UPYUN_PASSWORD


@pytest.fixture(autouse=True)
def _patch_config_path(monkeypatch: pytest.MonkeyPatch, tmp_path: pytest.TempPathFactory) -> None:
    """将配置路径指向临时目录，避免污染用户 ~/.config/upyunapi。"""
    config_dir = tmp_path / "upyunapi"
    config_dir.mkdir(parents=True, exist_ok=True)

    def _config_dir():
        return config_dir

    monkeypatch.setattr("upyunapi.cli_config._config_dir", _config_dir)


def test_load_config_missing_returns_none() -> None:
    assert load_config() is None


def test_load_config_invalid_json_returns_none(tmp_path: pytest.TempPathFactory) -> None:
    config_file = tmp_path / "upyunapi" / "config.json"
    config_file.write_text("not json", encoding="utf-8")
    assert load_config() is None


def test_load_config_missing_required_key_returns_none(tmp_path: pytest.TempPathFactory) -> None:
    """缺少 bucket 时 load_config 返回 None。"""
    config_file = tmp_path / "upyunapi" / "config.json"
    config_file.write_text('{"operator": "u", "password": "p"}', encoding="utf-8")
    assert load_config() is None


def test_save_config_roundtrip() -> None:
    save_config(UPYUN_OPERATOR, UPYUN_PASSWORD, UPYUN_BUCKET, host=UPYUN_HOST, api_secret=None)
    cfg = load_config()
    assert cfg == {
        "operator": UPYUN_OPERATOR,
        "password": UPYUN_PASSWORD,
        "bucket": UPYUN_BUCKET,
        "host": UPYUN_HOST,
    }


def test_save_config_rejects_unknown_keys() -> None:
    with pytest.raises(ValueError):
        save_config(UPYUN_OPERATOR, UPYUN_PASSWORD, UPYUN_BUCKET, colour="red")


def test_clear_config_removes_file() -> None:
    save_config("u", "p", "b")
    assert load_config() is not None
    assert clear_config() is True
    assert load_config() is None


def test_clear_config_when_missing_returns_false() -> None:
    assert clear_config() is False
