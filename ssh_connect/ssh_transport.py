"""OpenSSH 客户端适配模块

使用系统自带的 ssh/scp/ssh-copy-id 命令，而不是 Python SSH 实现：
连接复用依赖 OpenSSH 的 ControlMaster 控制套接字，交互会话也由 ssh 本身接管终端。

提供以下能力：
- 按 (user, hostname, port) 命名的控制套接字，存活检查（-O check）
- 建立带空闲保持时间（ControlPersist）的主连接，可强制纯密码认证
- 经由跳板机的 -J 参数，以及供 ssh-copy-id 使用的 -o ProxyJump 通用参数
- 远程非交互命令执行、scp 上传、ssh-copy-id 公钥部署
- 交互会话：在外部终端中分离启动，或以 exec 方式接管当前进程
"""
from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

from loguru import logger

from ssh_connect.host_registry import HostRecord
from ssh_connect.host_resolver import JumpRoute
from ssh_connect.settings import SSHConnectSettings
from ssh_connect.types import ForwardFlag


@dataclass(frozen=True)
class SSHTarget:
    """一次连接的目标三元组，同时也是控制套接字的键。"""

    user: str
    hostname: str
    port: int

    @classmethod
    def from_record(cls, record: HostRecord) -> SSHTarget:
        return cls(user=record.user, hostname=record.hostname, port=record.port)

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.hostname}"

    @property
    def socket_name(self) -> str:
        return f"{self.user}@{self.hostname}:{self.port}"


@dataclass(frozen=True)
class ForwardSpec:
    """临时端口转发参数，对应 ssh 的 -L / -R。"""

    flag: ForwardFlag
    spec: str

    def args(self) -> list[str]:
        return [self.flag, self.spec]


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _jump_args(jump: JumpRoute | None) -> list[str]:
    return jump.ssh_args() if jump is not None else []


class OpenSSHTransport:
    """系统 OpenSSH 客户端的薄封装。

    每次调用都阻塞到外部命令退出为止，不额外叠加超时控制。

    Attributes:
        _settings: ssh-connect 配置
    """

    def __init__(self, *, settings: SSHConnectSettings) -> None:
        self._settings = settings

    def available(self) -> bool:
        return shutil.which(self._settings.ssh_binary) is not None

    # 控制套接字

    def control_path(self, target: SSHTarget) -> Path:
        return self._settings.control_dir / target.socket_name

    def ensure_control_dir(self) -> None:
        self._settings.control_dir.mkdir(parents=True, exist_ok=True)

    def remove_control_socket(self, target: SSHTarget) -> None:
        self.control_path(target).unlink(missing_ok=True)

    def _control_option(self, target: SSHTarget) -> list[str]:
        return ["-o", f"ControlPath={self.control_path(target)}"]

    # 连接

    def check_master(self, target: SSHTarget, jump: JumpRoute | None) -> bool:
        """检查该目标的主连接是否存活。"""
        argv = [
            self._settings.ssh_binary,
            *_jump_args(jump),
            *self._control_option(target),
            "-O",
            "check",
            target.destination,
            "-p",
            str(target.port),
        ]
        return self._run(argv, quiet=True).ok

    def open_master(
        self,
        target: SSHTarget,
        jump: JumpRoute | None,
        *,
        password_only: bool = False,
    ) -> CommandResult:
        """建立主连接并执行 exit，捕获远端横幅与错误输出。

        Args:
            target: 连接目标
            jump: 跳板机路由
            password_only: 是否强制纯密码认证

        Returns:
            CommandResult: 返回码与捕获的输出
        """
        argv = [
            self._settings.ssh_binary,
            *_jump_args(jump),
            "-M",
            "-o",
            f"ControlPersist={self._settings.control_persist}",
            *self._control_option(target),
        ]
        if password_only:
            argv += ["-o", "PreferredAuthentications=password"]
        argv += [target.destination, "-p", str(target.port), "exit"]
        return self._run(argv, capture=True)

    def probe_key_auth(self, target: SSHTarget) -> bool:
        """以非交互、仅密钥、短超时的方式测试能否直接登录。"""
        argv = [
            self._settings.ssh_binary,
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={self._settings.probe_timeout_seconds}",
            target.destination,
            "-p",
            str(target.port),
            "exit",
        ]
        return self._run(argv, quiet=True).ok

    # 远程操作

    def run_remote(self, target: SSHTarget, jump: JumpRoute | None, command: str) -> CommandResult:
        argv = [
            self._settings.ssh_binary,
            *_jump_args(jump),
            *self._control_option(target),
            target.destination,
            "-p",
            str(target.port),
            command,
        ]
        return self._run(argv)

    def upload(
        self,
        target: SSHTarget,
        jump: JumpRoute | None,
        local_path: Path,
        remote_path: str,
    ) -> CommandResult:
        argv = [
            self._settings.scp_binary,
            *_jump_args(jump),
            *self._control_option(target),
            "-P",
            str(target.port),
            str(local_path),
            f"{target.destination}:{remote_path}",
        ]
        return self._run(argv)

    def copy_id(self, target: SSHTarget, jump: JumpRoute | None, key_path: Path) -> CommandResult:
        """通过 ssh-copy-id 部署公钥。

        ssh-copy-id 不接受 -J，跳板机以 -o ProxyJump=... 通用参数传入。
        """
        argv = [self._settings.ssh_copy_id_binary]
        if jump is not None:
            argv += jump.proxy_option()
        argv += [
            *self._control_option(target),
            "-i",
            str(key_path),
            "-p",
            str(target.port),
            target.destination,
        ]
        return self._run(argv)

    # 交互会话

    def interactive_argv(
        self,
        target: SSHTarget,
        jump: JumpRoute | None,
        forwards: Sequence[ForwardSpec] = (),
    ) -> list[str]:
        argv = [self._settings.ssh_binary]
        for forward in forwards:
            argv += forward.args()
        argv += [
            *_jump_args(jump),
            *self._control_option(target),
            target.destination,
            "-p",
            str(target.port),
        ]
        return argv

    def terminal_launcher(self) -> list[str] | None:
        """解析外部终端命令，为空或找不到可执行文件时返回 None。"""
        raw = self._settings.terminal_cmd.strip()
        if not raw:
            return None
        try:
            launcher = shlex.split(raw)
        except ValueError:
            logger.warning("无法解析终端命令: {}", raw)
            return None
        if not launcher or shutil.which(launcher[0]) is None:
            logger.info("终端命令不可用，使用当前终端: {}", raw)
            return None
        return launcher

    def spawn_in_terminal(self, launcher: Sequence[str], argv: Sequence[str]) -> None:
        """在外部终端中分离启动会话，不等待其结束。"""
        command = [*launcher, *argv]
        logger.debug("spawn: {}", shlex.join(command))
        subprocess.Popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )

    def exec_session(self, argv: Sequence[str]) -> NoReturn:
        """以 exec 方式把当前进程交给交互会话，不会返回。"""
        logger.debug("exec: {}", shlex.join(argv))
        logger.remove()
        os.execvp(argv[0], list(argv))

    def _run(self, argv: list[str], *, capture: bool = False, quiet: bool = False) -> CommandResult:
        logger.debug("run: {}", shlex.join(argv))
        try:
            if capture:
                with tempfile.TemporaryFile(mode="w+", encoding="utf-8", errors="replace") as scratch:
                    proc = subprocess.run(argv, stdout=scratch, stderr=subprocess.STDOUT)
                    scratch.seek(0)
                    output = scratch.read()
                return CommandResult(returncode=proc.returncode, output=output)
            if quiet:
                proc = subprocess.run(
                    argv, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
                )
            else:
                proc = subprocess.run(argv)
        except FileNotFoundError as e:
            logger.error("找不到命令 {}: {}", argv[0], e)
            return CommandResult(returncode=127, output=f"找不到命令: {argv[0]}")
        return CommandResult(returncode=proc.returncode)
