"""主机解析模块

把友好名称或 user@hostname 直连字符串解析为具体的主机记录，包括：
- 按名称精确查找（区分大小写，取第一条匹配）
- 跳板机查找与校验（不存在 / 未标记为跳板机 两种错误分别报告）
- 按 user+hostname+port 三元组查重
- 直连字符串格式校验

跳板机只支持一层：跳板机自身直接连接，不会继续解析它的 JumpHostName。
"""
from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from ssh_connect.constants import DEFAULT_SSH_PORT, NO_JUMP_HOST
from ssh_connect.exceptions import (
    InvalidConnectionStringError,
    JumpHostNotAuthorizedError,
    JumpHostNotFoundError,
)
from ssh_connect.host_registry import HostRecord, HostRegistry


@dataclass(frozen=True)
class JumpRoute:
    """经由跳板机的路由。

    Attributes:
        name: 跳板机友好名称
        user: 跳板机登录用户
        hostname: 跳板机地址
        port: 跳板机SSH端口
    """

    name: str
    user: str
    hostname: str
    port: int = DEFAULT_SSH_PORT

    @classmethod
    def from_record(cls, record: HostRecord) -> JumpRoute:
        return cls(name=record.name, user=record.user, hostname=record.hostname, port=record.port)

    @property
    def spec(self) -> str:
        return f"{self.user}@{self.hostname}:{self.port}"

    def ssh_args(self) -> list[str]:
        """ssh/scp 专用的 -J 参数。"""
        return ["-J", self.spec]

    def proxy_option(self) -> list[str]:
        """通用 -o 形式，供不接受 -J 的 ssh-copy-id 使用。"""
        return ["-o", f"ProxyJump={self.spec}"]


@dataclass(frozen=True)
class DirectTarget:
    user: str
    hostname: str

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.hostname}"


class HostResolver:
    def __init__(self, registry: HostRegistry) -> None:
        self._registry = registry

    def resolve_by_name(self, name: str) -> HostRecord | None:
        for record in self._registry.records():
            if record.name == name:
                return record
        return None

    def resolve_jump_host(self, jump_host_name: str) -> HostRecord | None:
        """查找可用作跳板机的记录。

        Args:
            jump_host_name: 跳板机名称，"0" 或空表示不使用跳板机

        Returns:
            跳板机记录；不使用跳板机时返回 None

        Raises:
            JumpHostNotFoundError: 名称在注册表中不存在
            JumpHostNotAuthorizedError: 记录存在但 IsJumphost 不为 1
        """
        if not jump_host_name or jump_host_name == NO_JUMP_HOST:
            return None

        candidates = [r for r in self._registry.records() if r.name == jump_host_name]
        if not candidates:
            raise JumpHostNotFoundError(
                f"跳板机 '{jump_host_name}' 在 {self._registry.path} 中不存在",
                jump_host_name=jump_host_name,
            )
        for record in candidates:
            if record.is_jump_host:
                return record
        raise JumpHostNotAuthorizedError(
            f"主机 '{jump_host_name}' 未在 {self._registry.path} 中标记为跳板机",
            jump_host_name=jump_host_name,
        )

    def jump_route_for(self, record: HostRecord) -> JumpRoute | None:
        jump_host = self.resolve_jump_host(record.jump_host_name)
        if jump_host is None:
            return None
        route = JumpRoute.from_record(jump_host)
        logger.debug("{} 经由跳板机 {} ({})", record.name, route.name, route.spec)
        return route

    def jump_host_candidates(self) -> list[HostRecord]:
        return [r for r in self._registry.records() if r.is_jump_host]

    def find_existing_by_user_host_port(
        self, user: str, hostname: str, port: int
    ) -> HostRecord | None:
        for record in self._registry.records():
            if (record.user, record.hostname, record.port) == (user, hostname, port):
                return record
        return None

    @staticmethod
    def parse_direct_connection_string(text: str) -> DirectTarget:
        """解析 user@hostname 直连字符串。

        Raises:
            InvalidConnectionStringError: 不是 user@hostname 格式时抛出
        """
        user, sep, hostname = text.partition("@")
        malformed = not sep or not user or not hostname or "@" in hostname
        if malformed or any(c.isspace() for c in text):
            raise InvalidConnectionStringError(
                f"无效的连接字符串 '{text}'，格式必须为 user@hostname",
                argument=text,
            )
        return DirectTarget(user=user, hostname=hostname)
