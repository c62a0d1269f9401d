"""ssh-connect 配置设置模块

使用 Pydantic Settings 管理配置，支持以下配置方式（优先级从高到低）：
1. 环境变量（前缀：SSH_CONNECT_）
2. .env 文件
3. JSON 配置文件
4. 默认值

示例环境变量：
    SSH_CONNECT_HOSTS_FILE=~/.config/mysshhosts.conf
    SSH_CONNECT_TERMINAL_CMD="gnome-terminal --"
    SSH_CONNECT_DEVICE_SIGNATURES=EdgeOS,VyOS
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ssh_connect.constants import (
    DEFAULT_CONTROL_PERSIST,
    DEFAULT_DEVICE_SIGNATURES,
    DEFAULT_REMOTE_TEMP_KEY_PATH,
)


class SSHConnectSettings(BaseSettings):
    """ssh-connect 配置类。

    支持通过环境变量、.env文件、JSON文件或默认值进行配置。
    环境变量前缀为 SSH_CONNECT_。
    """

    model_config = SettingsConfigDict(
        env_prefix="SSH_CONNECT_", extra="ignore", validate_default=True
    )

    # 配置文件路径
    config_file: Path = Field(default=Path("~/.config/ssh-connect/config.json"))

    # 主机注册表
    hosts_file: Path = Field(
        default=Path("~/.config/mysshhosts.conf"), description="主机注册表文件路径"
    )

    # 交互会话终端，为空或不可执行时在当前终端中打开
    terminal_cmd: str = Field(default="", description="外部终端启动命令，如 'gnome-terminal --'")

    # 连接复用配置
    control_dir: Path = Field(
        default=Path("~/.ssh/controlmasters"), description="控制套接字目录"
    )
    control_persist: str = Field(
        default=DEFAULT_CONTROL_PERSIST, description="主连接空闲保持时间"
    )
    probe_timeout_seconds: int = Field(
        default=5, ge=1, description="密钥认证探测超时时间(秒)"
    )

    # 公钥安装配置
    ssh_dir: Path = Field(default=Path("~/.ssh"), description="本地公钥搜索目录")
    device_signatures: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DEVICE_SIGNATURES),
        description="受限设备横幅特征字符串",
    )
    remote_temp_key_path: str = Field(
        default=DEFAULT_REMOTE_TEMP_KEY_PATH, description="受限设备上传公钥的临时路径"
    )

    # 外部命令
    ssh_binary: str = Field(default="ssh")
    scp_binary: str = Field(default="scp")
    ssh_copy_id_binary: str = Field(default="ssh-copy-id")

    # 日志配置
    log_level: str = Field(default="INFO", description="日志文件级别")
    console_log_level: str = Field(default="WARNING", description="终端日志级别")
    log_dir: Path = Field(
        default=Path("~/.local/state/ssh-connect/logs"), description="日志目录"
    )
    log_rotation: str = Field(default="10 MB", description="日志轮转大小")
    log_retention: str = Field(default="30 days", description="日志保留时间")

    @field_validator("config_file", "hosts_file", "control_dir", "ssh_dir", "log_dir")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return Path(value).expanduser()

    @field_validator("device_signatures", mode="before")
    @classmethod
    def _split_signatures(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value
