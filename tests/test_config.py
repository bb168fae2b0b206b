"""Config 模块测试。

测试 LSH_* 环境变量解析和配置管理。
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest

from logshell.config import (
    DEFAULT_HTTP_TIMEOUT,
    Config,
    get_config,
    load_config,
    parse_header,
    parse_key_value,
    reload_config,
)

_LSH_KEYS = (
    "LSH_HTTP_URL",
    "LSH_HTTP_ONLY",
    "LSH_HTTP_TIMEOUT",
    "LSH_HTTP_HEADERS",
    "LSH_LOG_DEBUG",
    "LSH_LOG_LEVEL",
)


def _clean_env() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if k not in _LSH_KEYS}


class TestDefaults:
    """测试默认值。"""

    def test_unset_means_console_only(self):
        """未设置任何变量时只输出到控制台。"""
        with mock.patch.dict(os.environ, _clean_env(), clear=True):
            config = load_config()
            assert config.http_url == ""
            assert config.http_enabled is False
            assert config.http_only is False
            assert config.http_timeout == DEFAULT_HTTP_TIMEOUT
            assert config.http_headers == {}
            assert config.log_debug is False
            assert config.log_file is None
            assert config.log_level == "WARNING"

    def test_url_whitespace_stripped(self):
        with mock.patch.dict(os.environ, {"LSH_HTTP_URL": "  http://localhost:8080/logs "}, clear=False):
            config = load_config()
            assert config.http_url == "http://localhost:8080/logs"
            assert config.http_enabled is True


class TestParseBool:
    """测试布尔值解析。"""

    @pytest.mark.parametrize("value", ["true", "True", "TRUE", "1", "yes", "Yes", "on"])
    def test_truthy_values(self, value: str):
        """真值。"""
        with mock.patch.dict(os.environ, {"LSH_HTTP_ONLY": value}, clear=False):
            assert load_config().http_only is True

    @pytest.mark.parametrize("value", ["false", "False", "FALSE", "0", "no", "No", "off", ""])
    def test_falsy_values(self, value: str):
        """假值。"""
        with mock.patch.dict(os.environ, {"LSH_HTTP_ONLY": value}, clear=False):
            assert load_config().http_only is False


class TestParseTimeout:
    """测试超时时间解析。"""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("10", 10.0),
            ("2.5", 2.5),
            ("0", 1.0),
            ("-5", 1.0),
            ("1000", 300.0),
            ("abc", DEFAULT_HTTP_TIMEOUT),
            ("", DEFAULT_HTTP_TIMEOUT),
        ],
    )
    def test_timeout(self, value: str, expected: float):
        with mock.patch.dict(os.environ, {"LSH_HTTP_TIMEOUT": value}, clear=False):
            assert load_config().http_timeout == expected


class TestParseHeaders:
    """测试请求头解析。"""

    def test_header_list(self):
        env = {"LSH_HTTP_HEADERS": "Authorization:Bearer abc, X-Source:ci"}
        with mock.patch.dict(os.environ, env, clear=False):
            assert load_config().http_headers == {
                "Authorization": "Bearer abc",
                "X-Source": "ci",
            }

    def test_value_may_contain_colon(self):
        env = {"LSH_HTTP_HEADERS": "X-Url:http://a:1"}
        with mock.patch.dict(os.environ, env, clear=False):
            assert load_config().http_headers == {"X-Url": "http://a:1"}

    def test_invalid_items_ignored(self):
        """无效项被忽略。"""
        env = {"LSH_HTTP_HEADERS": "novalue,:empty-key,,X-Ok:1"}
        with mock.patch.dict(os.environ, env, clear=False):
            assert load_config().http_headers == {"X-Ok": "1"}

    def test_parse_header(self):
        assert parse_header(" X-Job : build ") == ("X-Job", "build")
        with pytest.raises(ValueError):
            parse_header("no-colon")

    def test_parse_key_value(self):
        assert parse_key_value("job=unit=1") == ("job", "unit=1")
        assert parse_key_value("empty=") == ("empty", "")
        with pytest.raises(ValueError):
            parse_key_value("=value")
        with pytest.raises(ValueError):
            parse_key_value("missing")


class TestLogSettings:
    """测试诊断日志配置。"""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("debug", "DEBUG"), ("Info", "INFO"), ("ERROR", "ERROR"), ("verbose", "WARNING")],
    )
    def test_log_level(self, value: str, expected: str):
        with mock.patch.dict(os.environ, {"LSH_LOG_LEVEL": value}, clear=False):
            assert load_config().log_level == expected

    def test_log_debug_sets_file(self):
        """调试模式下日志文件位于临时目录。"""
        with mock.patch.dict(os.environ, {"LSH_LOG_DEBUG": "1"}, clear=False):
            config = load_config()
            assert config.log_debug is True
            assert config.log_file is not None
            log_file = Path(config.log_file)
            assert log_file.parent.name == "logshell"
            assert log_file.name.startswith("lsh_debug_")


class TestConfigMethods:
    """测试 Config 类方法。"""

    def test_repr_hides_header_values(self):
        """repr 只显示请求头的 key。"""
        config = Config(
            http_url="http://localhost:8080/logs",
            http_headers={"Authorization": "Bearer secret-token"},
        )
        text = repr(config)
        assert "Authorization" in text
        assert "secret-token" not in text
        assert "http://localhost:8080/logs" in text

    def test_repr_without_url(self):
        assert "http_url=none" in repr(Config())


class TestGlobalConfig:
    """测试全局配置实例。"""

    def test_get_config_returns_same_instance(self):
        """get_config 返回同一个实例。"""
        reload_config()
        assert get_config() is get_config()

    def test_reload_config_creates_new_instance(self):
        """reload_config 读取新的环境变量。"""
        with mock.patch.dict(os.environ, {"LSH_HTTP_URL": "http://first/logs"}, clear=False):
            first = reload_config()
        with mock.patch.dict(os.environ, {"LSH_HTTP_URL": "http://second/logs"}, clear=False):
            second = reload_config()
        assert first is not second
        assert second.http_url == "http://second/logs"
        assert get_config() is second
