"""连接编排模块

单次连接尝试的状态机：

    check_existing ─(存活)──────────────────────────────┐
          │                                               ▼
          └─(不存在)→ establish/auth_stage1 ─(成功)→ success
                            │                             ▲
                            └─(失败)→ auth_stage2 ─(成功)─┘
                                           └─(失败)→ failed

- 跳板机参数在 check_existing 之前构造一次，之后所有阶段共用
- 复用已有主连接时跳过两个认证阶段，也不检查横幅
- 新建连接成功后检查横幅中的设备特征，决定公钥安装策略
- 任何成功都会刷新注册表中的最近连接时间；未安装公钥时提示安装
- 最后打开交互会话：配置了可用的外部终端则分离启动并返回，否则 exec 接管当前进程
"""
from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from loguru import logger

from ssh_connect.exceptions import AuthFailedError, RegistryWriteError
from ssh_connect.host_registry import HostRecord, HostRegistry
from ssh_connect.host_resolver import HostResolver, JumpRoute
from ssh_connect.key_provisioner import KeyProvisioner, detect_device_kind
from ssh_connect.prompts import Prompter
from ssh_connect.settings import SSHConnectSettings
from ssh_connect.ssh_transport import ForwardSpec, OpenSSHTransport, SSHTarget
from ssh_connect.types import ConnectionState, DeviceKind, KeyInstallOutcome, LaunchMode


@dataclass
class EstablishedSession:
    """已建立（或复用）的主连接。

    Attributes:
        target: 连接目标
        jump: 跳板机路由
        reused: 是否复用了已有主连接
        device_kind: 设备类型
        states: 经过的状态序列
    """

    target: SSHTarget
    jump: JumpRoute | None
    reused: bool
    device_kind: DeviceKind = "standard"
    states: list[ConnectionState] = field(default_factory=list)


@dataclass(frozen=True)
class ConnectionResult:
    host: HostRecord
    reused: bool
    device_kind: DeviceKind
    key_outcome: KeyInstallOutcome | None
    launch_mode: LaunchMode
    states: tuple[ConnectionState, ...]


class ConnectionOrchestrator:
    def __init__(
        self,
        *,
        settings: SSHConnectSettings,
        registry: HostRegistry,
        resolver: HostResolver,
        transport: OpenSSHTransport,
        key_provisioner: KeyProvisioner,
        prompter: Prompter,
        time_provider: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._resolver = resolver
        self._transport = transport
        self._keys = key_provisioner
        self._prompter = prompter
        self._time = time_provider

    def connect(self, host: HostRecord, forwards: Sequence[ForwardSpec] = ()) -> ConnectionResult:
        """连接到主机并打开交互会话。

        在当前终端打开会话时 exec 接管进程，本方法不会返回。

        Raises:
            JumpHostNotFoundError: 跳板机不存在
            JumpHostNotAuthorizedError: 引用的主机未标记为跳板机
            AuthFailedError: 两个认证阶段均失败
        """
        jump = self._resolver.jump_route_for(host)
        if jump is not None:
            self._prompter.say(f"使用跳板机: {jump.user}@{jump.hostname}")

        session = self.establish(host, jump)

        self._prompter.say("连接成功，更新连接时间。")
        self._record_success(host)

        key_outcome: KeyInstallOutcome | None = None
        if not host.key_installed:
            key_outcome = self._keys.offer_install(host, session.device_kind, jump)

        launch_mode = self._launch(session, forwards)
        return ConnectionResult(
            host=host,
            reused=session.reused,
            device_kind=session.device_kind,
            key_outcome=key_outcome,
            launch_mode=launch_mode,
            states=tuple(session.states),
        )

    def establish(self, host: HostRecord, jump: JumpRoute | None) -> EstablishedSession:
        """复用或建立主连接，执行两阶段认证回退。

        Raises:
            AuthFailedError: 两个认证阶段均失败
        """
        target = SSHTarget.from_record(host)
        self._transport.ensure_control_dir()
        states: list[ConnectionState] = ["check_existing"]

        if self._transport.check_master(target, jump):
            self._prompter.say(f"复用到 {host.name} 的已有连接。")
            states.append("success")
            logger.info("{}: 复用已有主连接", host.name)
            return EstablishedSession(target=target, jump=jump, reused=True, states=states)

        self._prompter.say(f"正在建立到 {host.name} 的持久连接...")
        states += ["establish", "auth_stage1"]
        result = self._transport.open_master(target, jump)

        if not result.ok:
            self._prompter.say("首次连接失败，改用纯密码认证重试...")
            states.append("auth_stage2")
            logger.info("{}: 密钥认证阶段失败 (rc={})，重试密码认证", host.name, result.returncode)
            result = self._transport.open_master(target, jump, password_only=True)
            if not result.ok:
                states.append("failed")
                self._transport.remove_control_socket(target)
                logger.warning("{}: 两阶段认证均失败 (rc={})", host.name, result.returncode)
                raise AuthFailedError(
                    f"连接 {host.name} 失败",
                    host=host.hostname,
                    port=host.port,
                    output=result.output,
                )

        device_kind = detect_device_kind(result.output, self._settings.device_signatures)
        states.append("success")
        logger.info("{}: 主连接已建立 (设备类型: {})", host.name, device_kind)
        return EstablishedSession(
            target=target,
            jump=jump,
            reused=False,
            device_kind=device_kind,
            states=states,
        )

    def _record_success(self, host: HostRecord) -> None:
        try:
            self._registry.touch(host.name, timestamp=int(self._time()))
        except RegistryWriteError as e:
            self._prompter.error(f"错误: 无法更新连接时间: {e.message}")

    def _launch(self, session: EstablishedSession, forwards: Sequence[ForwardSpec]) -> LaunchMode:
        argv = self._transport.interactive_argv(session.target, session.jump, forwards)
        launcher = self._transport.terminal_launcher()
        if launcher is not None:
            self._prompter.say("正在新终端中打开会话...")
            self._transport.spawn_in_terminal(launcher, argv)
            return "terminal"

        self._prompter.say("正在当前终端中打开会话...")
        self._transport.exec_session(argv)
        return "current"
