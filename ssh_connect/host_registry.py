"""主机注册表模块

以逗号分隔的纯文本文件保存主机记录，每行一条：

    FriendlyName,User,Hostname,Port,Timestamp,KeyInstalled,JumpHostName,IsJumphost

提供以下功能：
- 读取记录并按最近连接时间降序排序（时间相同时保持文件顺序）
- 追加记录（写入时强制名称唯一）
- 按名称或 user+hostname+port 三元组修改单个字段
- 注册表缺失时交互式创建带说明注释的模板文件

以 # 开头的注释行和空行在读取时忽略，修改时原样写回。
"""
from __future__ import annotations

import csv
import dataclasses
import io
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from ssh_connect.constants import DEFAULT_SSH_PORT, NO_JUMP_HOST, REGISTRY_FIELDS
from ssh_connect.exceptions import DuplicateHostError
from ssh_connect.file_transaction import TransactionalFile
from ssh_connect.settings import SSHConnectSettings
from ssh_connect.types import HostField

if TYPE_CHECKING:
    from ssh_connect.prompts import Prompter

_MIN_FIELDS = 3

TEMPLATE = """\
# ==============================================================================
# Host Configuration File for ssh-connect
# ==============================================================================
#
# Instructions:
# - Each line represents a single host.
# - The format is a comma-separated list (8 columns):
#   Friendly Name,User,Hostname,Port,LastConnTimestamp,KeyInstalled,JumpHostName,IsJumphost
#
# - JumpHostName: Use '0' for a direct connection, or the 'Friendly Name' of
#                 another host that has 'IsJumphost' set to 1.
# - IsJumphost:   Set to 1 to allow this host to be used as a jumphost.
#
# ==============================================================================
#
# --- Example Entries (uncomment and edit to use) ---
#
# 1. A host that can be used as a jumphost
#Main Bastion,jumpadmin,bastion.example.com,22,0,1,0,1
#
# 2. A private server that connects through "Main Bastion"
#Private DB,dbuser,10.0.1.50,22,0,0,Main Bastion,0
#
# 3. A standard, direct-connect server
#Web Server,webadmin,192.168.1.100,22,0,0,0,0

"""


def _parse_flag(value: str, field: str) -> bool:
    if value in ("", "0"):
        return False
    if value == "1":
        return True
    raise ValueError(f"{field} 必须为 0 或 1: {value!r}")


def _parse_int(value: str, field: str, *, default: int) -> int:
    if value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{field} 必须为整数: {value!r}") from None


def name_problem(name: str) -> str | None:
    """返回名称无法原样写入并读回的原因，名称可用时返回 None。"""
    if not name:
        return "名称不能为空"
    if name != name.strip():
        return "名称首尾不能有空白"
    if name.startswith("#"):
        return "名称不能以 # 开头（会被当作注释行）"
    if "\n" in name or "\r" in name:
        return "名称不能包含换行符"
    return None


def _require_text(value: str) -> None:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("包含无法解码的非UTF-8字节") from None


def is_data_line(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith("#")


def _line_ending(line: str) -> str:
    return line[len(line.rstrip("\r\n")):]


@dataclass(frozen=True)
class HostRecord:
    """注册表中的一条主机记录。

    Attributes:
        name: 友好名称，注册表内唯一（区分大小写精确匹配）
        user: 远程登录用户
        hostname: DNS名称或IP地址
        port: SSH端口，1-65535
        last_connected_at: 最近连接的Unix时间戳，0表示从未连接
        key_installed: 是否已安装公钥
        jump_host_name: 跳板机名称，"0"表示不使用跳板机
        is_jump_host: 是否允许被其他主机作为跳板机引用
    """

    name: str
    user: str
    hostname: str
    port: int = DEFAULT_SSH_PORT
    last_connected_at: int = 0
    key_installed: bool = False
    jump_host_name: str = NO_JUMP_HOST
    is_jump_host: bool = False

    def __post_init__(self) -> None:
        problem = name_problem(self.name)
        if problem is not None:
            raise ValueError(f"{problem}: {self.name!r}")
        if not self.user or not self.hostname:
            raise ValueError("user和hostname不能为空")
        for value in (self.user, self.hostname, self.jump_host_name):
            if value != value.strip() or "\n" in value or "\r" in value:
                raise ValueError(f"字段首尾不能有空白或包含换行符: {value!r}")
        for value in (self.name, self.user, self.hostname, self.jump_host_name):
            _require_text(value)
        if not 1 <= self.port <= 65535:
            raise ValueError(f"端口超出范围: {self.port}")

    @property
    def has_jump_host(self) -> bool:
        return bool(self.jump_host_name) and self.jump_host_name != NO_JUMP_HOST

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.hostname}"

    @classmethod
    def from_line(cls, line: str) -> HostRecord:
        """解析一行注册表文本。

        缺少的尾部字段（旧版本格式）按默认值补齐。

        Raises:
            ValueError: 字段数量或取值非法时抛出
        """
        _require_text(line)
        fields = [item.strip() for item in next(csv.reader([line.rstrip("\r\n")]))]
        if not _MIN_FIELDS <= len(fields) <= len(REGISTRY_FIELDS):
            raise ValueError(f"字段数量应为{len(REGISTRY_FIELDS)}，实际为{len(fields)}")
        fields += [""] * (len(REGISTRY_FIELDS) - len(fields))
        name, user, hostname, port, timestamp, key, jump, is_jump = fields
        return cls(
            name=name,
            user=user,
            hostname=hostname,
            port=_parse_int(port, "Port", default=DEFAULT_SSH_PORT),
            last_connected_at=_parse_int(timestamp, "Timestamp", default=0),
            key_installed=_parse_flag(key, "KeyInstalled"),
            jump_host_name=jump or NO_JUMP_HOST,
            is_jump_host=_parse_flag(is_jump, "IsJumphost"),
        )

    def to_line(self) -> str:
        """序列化为一行注册表文本（不含换行符）。"""
        row = [
            self.name,
            self.user,
            self.hostname,
            str(self.port),
            str(self.last_connected_at),
            "1" if self.key_installed else "0",
            self.jump_host_name or NO_JUMP_HOST,
            "1" if self.is_jump_host else "0",
        ]
        buf = io.StringIO()
        csv.writer(buf, lineterminator="").writerow(row)
        return buf.getvalue()


class HostRegistry:
    """主机注册表。

    独占注册表文件的读写，所有修改都通过整文件原子替换完成。

    Attributes:
        path: 注册表文件路径
    """

    def __init__(self, *, settings: SSHConnectSettings | None = None, path: Path | None = None) -> None:
        if path is None:
            if settings is None:
                raise ValueError("必须提供settings或path")
            path = settings.hosts_file
        self._file = TransactionalFile(Path(path))

    @property
    def path(self) -> Path:
        return self._file.path

    def exists(self) -> bool:
        return self._file.exists()

    def records(self) -> list[HostRecord]:
        """按文件顺序返回全部有效记录，无法解析的行跳过并告警。"""
        result: list[HostRecord] = []
        for lineno, line in enumerate(self._file.read_lines(), start=1):
            if not is_data_line(line):
                continue
            try:
                result.append(HostRecord.from_line(line))
            except ValueError as e:
                logger.warning("跳过注册表 {} 第{}行: {}", self.path, lineno, e)
        return result

    def load(self) -> list[HostRecord]:
        """返回按最近连接时间降序排列的记录，时间相同时保持文件顺序。"""
        return sorted(self.records(), key=lambda r: r.last_connected_at, reverse=True)

    def append_record(self, record: HostRecord) -> None:
        """追加一条记录，父目录不存在时自动创建。

        Raises:
            DuplicateHostError: 名称已存在时抛出
            RegistryWriteError: 写入失败时抛出
        """
        if any(r.name == record.name for r in self.records()):
            raise DuplicateHostError(
                f"主机名称 '{record.name}' 已存在",
                name=record.name,
                path=str(self.path),
            )
        self._file.append_line(record.to_line())
        logger.info("已添加主机记录: {}", record.name)

    def update_field(self, name: str, field: HostField, value: object) -> int:
        """修改名称等于 name 的记录的单个字段。

        名称重复时所有匹配行都会被修改，因此写入时需保证名称唯一。

        Returns:
            被修改的行数
        """
        return self._rewrite(lambda r: r.name == name, field, value, key=name)

    def update_field_by_address(
        self,
        user: str,
        hostname: str,
        port: int,
        field: HostField,
        value: object,
    ) -> int:
        """按 user+hostname+port 三元组修改字段（旧版本注册表的匹配方式）。"""
        return self._rewrite(
            lambda r: (r.user, r.hostname, r.port) == (user, hostname, port),
            field,
            value,
            key=f"{user}@{hostname}:{port}",
        )

    def touch(self, name: str, *, timestamp: int) -> int:
        return self.update_field(name, "last_connected_at", int(timestamp))

    def mark_key_installed(self, name: str) -> int:
        return self.update_field(name, "key_installed", True)

    def ensure_exists(self, prompter: Prompter) -> bool:
        """确认注册表存在，不存在时询问是否创建模板文件。

        Returns:
            调用方是否可以继续；用户拒绝创建时为 False

        Raises:
            RegistryWriteError: 模板写入失败时抛出
        """
        if self.exists():
            return True
        if not prompter.confirm(
            f"未找到主机配置文件 '{self.path}'。是否创建示例文件? (y/n): "
        ):
            return False
        self.create_template()
        prompter.say(f"已在 '{self.path}' 创建示例配置，请编辑并填写主机信息。")
        return True

    def create_template(self) -> None:
        self._file.replace(TEMPLATE)
        logger.info("已创建注册表模板: {}", self.path)

    def _rewrite(
        self,
        predicate: Callable[[HostRecord], bool],
        field: HostField,
        value: object,
        *,
        key: str,
    ) -> int:
        if field not in REGISTRY_FIELDS:
            raise ValueError(f"未知字段: {field}")
        if field == "name" and any(r.name == value for r in self.records()):
            raise DuplicateHostError(
                f"主机名称 '{value}' 已存在", name=str(value), path=str(self.path)
            )

        matched = 0

        def _apply(lines: list[str]) -> list[str]:
            nonlocal matched
            out: list[str] = []
            for line in lines:
                if is_data_line(line):
                    try:
                        record = HostRecord.from_line(line)
                    except ValueError:
                        out.append(line)
                        continue
                    if predicate(record):
                        matched += 1
                        updated = dataclasses.replace(record, **{field: value})
                        out.append(updated.to_line() + (_line_ending(line) or "\n"))
                        continue
                out.append(line)
            return out

        updated_lines = _apply(self._file.read_lines())
        if matched:
            self._file.replace("".join(updated_lines))
        if matched > 1:
            logger.warning("注册表中有{}条记录匹配 '{}'，已全部修改", matched, key)
        logger.debug("已更新 {} 的 {} 字段 ({}行)", key, field, matched)
        return matched
