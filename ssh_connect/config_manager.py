from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import ValidationError

from ssh_connect.exceptions import ConfigFileError
from ssh_connect.settings import SSHConnectSettings

DEFAULT_CONFIG_FILE = "~/.config/ssh-connect/config.json"
DEFAULT_ENV_FILE = ".env"


class ConfigManager:
    """按优先级合并各配置来源：JSON 文件 < .env < 环境变量 < 显式覆盖。"""

    def __init__(self, settings: SSHConnectSettings) -> None:
        self.settings = settings

    @classmethod
    def load(
        cls,
        *,
        config_file: Path | None = None,
        env_file: Path | None = None,
        env_prefix: str = "SSH_CONNECT_",
        overrides: Mapping[str, Any] | None = None,
    ) -> ConfigManager:
        """加载配置。

        Args:
            config_file: JSON 配置文件，默认取 {prefix}CONFIG_FILE 或 ~/.config/ssh-connect/config.json
            env_file: .env 文件，默认为当前目录下的 .env（存在时）
            env_prefix: 环境变量前缀
            overrides: 最高优先级的字段覆盖

        Raises:
            ConfigFileError: 配置文件无法解析或字段取值非法时抛出
        """
        config_path = Path(
            config_file or os.getenv(f"{env_prefix}CONFIG_FILE", DEFAULT_CONFIG_FILE)
        ).expanduser()

        sources: dict[str, dict[str, Any]] = {}
        if config_path.is_file():
            sources[str(config_path)] = cls._read_json(config_path)

        dotenv_path = env_file if env_file is not None else Path(DEFAULT_ENV_FILE)
        if dotenv_path.is_file():
            sources[str(dotenv_path)] = cls._read_dotenv(dotenv_path, env_prefix)

        merged: dict[str, Any] = {}
        for data in sources.values():
            merged.update(data)
        merged.update(cls._read_env(os.environ, env_prefix))
        merged.update(overrides or {})
        merged["config_file"] = config_path

        try:
            settings = SSHConnectSettings.model_validate(merged)
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise ConfigFileError(
                f"配置取值非法: {', '.join(fields) or e}",
                path=", ".join(sources) or str(config_path),
                details={"fields": fields},
            ) from e
        return cls(settings)

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any]:
        try:
            with path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigFileError(
                f"无法解析配置文件 '{path}': 第{e.lineno}行 {e.msg}", path=str(path)
            ) from e
        if not isinstance(raw, dict):
            raise ConfigFileError(f"配置文件 '{path}' 必须是JSON对象", path=str(path))
        return raw

    @staticmethod
    def _read_dotenv(path: Path, env_prefix: str) -> dict[str, Any]:
        return ConfigManager._read_env(dotenv_values(path), env_prefix)

    @staticmethod
    def _read_env(mapping: Mapping[str, Any], env_prefix: str) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for field_name in SSHConnectSettings.model_fields:
            value = mapping.get(f"{env_prefix}{field_name.upper()}")
            if value not in (None, ""):
                data[field_name] = value
        return data
