"""直连流程模块

处理命令行传入的、注册表中不存在对应名称的 user@hostname 连接字符串：

1. 按 user+hostname+port 查找已有记录，找到则直接连接
2. 以非交互、仅密钥、短超时方式探测，作为 KeyInstalled 的初始值
3. 询问友好名称（留空则使用连接字符串本身，名称重复时重新询问）
4. 询问是否为跳板机；不是则可从已有跳板机中选择一个关联
5. 追加新记录后连接
"""
from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from ssh_connect.connection_orchestrator import ConnectionOrchestrator
from ssh_connect.constants import DEFAULT_SSH_PORT, NO_JUMP_HOST
from ssh_connect.host_registry import HostRecord, HostRegistry, name_problem
from ssh_connect.host_resolver import DirectTarget, HostResolver
from ssh_connect.prompts import Prompter
from ssh_connect.ssh_transport import ForwardSpec, OpenSSHTransport, SSHTarget


class DirectConnectionFlow:
    def __init__(
        self,
        *,
        registry: HostRegistry,
        resolver: HostResolver,
        transport: OpenSSHTransport,
        orchestrator: ConnectionOrchestrator,
        prompter: Prompter,
    ) -> None:
        self._registry = registry
        self._resolver = resolver
        self._transport = transport
        self._orchestrator = orchestrator
        self._prompter = prompter

    def run(
        self,
        connection_string: str,
        port: int | None = None,
        forwards: Sequence[ForwardSpec] = (),
    ) -> int:
        """解析直连字符串并连接。

        Raises:
            InvalidConnectionStringError: 不是 user@hostname 格式
            RegistryWriteError: 新记录保存失败
            JumpHostError / AuthFailedError: 连接失败
        """
        target = self._resolver.parse_direct_connection_string(connection_string)
        port = port or DEFAULT_SSH_PORT

        existing = self._resolver.find_existing_by_user_host_port(target.user, target.hostname, port)
        if existing is not None:
            self._prompter.say("找到已有主机，正在连接...")
            self._orchestrator.connect(existing, forwards)
            return 0

        record = self.register(target, port, default_name=connection_string)
        self._orchestrator.connect(record, forwards)
        return 0

    def register(self, target: DirectTarget, port: int, *, default_name: str) -> HostRecord:
        self._prompter.say(f"检测到新主机，正在端口 {port} 上测试密钥认证...")
        key_installed = self._transport.probe_key_auth(
            SSHTarget(user=target.user, hostname=target.hostname, port=port)
        )
        if key_installed:
            self._prompter.say("SSH密钥认证成功。")
        else:
            self._prompter.say("密钥认证失败，将尝试交互式登录。")

        name = self._ask_name(default_name)
        is_jump_host, jump_host_name = self._ask_jump_host()

        record = HostRecord(
            name=name,
            user=target.user,
            hostname=target.hostname,
            port=port,
            last_connected_at=0,
            key_installed=key_installed,
            jump_host_name=jump_host_name,
            is_jump_host=is_jump_host,
        )
        self._registry.append_record(record)
        self._prompter.say(f"主机 '{name}' 已保存。")
        logger.info("新主机 {} ({}:{})", name, target.destination, port)
        return record

    def _ask_name(self, default_name: str) -> str:
        while True:
            name = self._prompter.ask("输入保存该主机的友好名称: ") or default_name
            problem = name_problem(name)
            if problem is not None:
                self._prompter.say(f"{problem}，请换一个名称。")
                continue
            if self._resolver.resolve_by_name(name) is None:
                return name
            self._prompter.say(f"名称 '{name}' 已存在，请换一个名称。")

    def _ask_jump_host(self) -> tuple[bool, str]:
        if self._prompter.confirm("该主机是否为跳板机? [y/N]: "):
            return True, NO_JUMP_HOST

        candidates = [r.name for r in self._resolver.jump_host_candidates()]
        if not candidates:
            return False, NO_JUMP_HOST

        self._prompter.say("可用的跳板机:")
        self._prompter.numbered(candidates)
        index = self._prompter.choose("指定跳板机? (输入编号，其他任意输入表示不使用): ", len(candidates))
        if index is None:
            return False, NO_JUMP_HOST
        return False, candidates[index]
