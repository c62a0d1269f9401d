"""公钥安装模块

首次连接成功且主机尚未安装公钥时，提示用户选择本地公钥并安装到远端。
按设备类型选择安装策略（连接建立后根据横幅只选择一次）：

- 标准主机：ssh-copy-id，跳板机以 -o ProxyJump 通用参数传入
- 受限设备（如 EdgeOS）：
    1. scp 上传公钥到固定的远端临时路径
    2. 合并现有 authorized_keys 与新公钥到持久化暂存文件，再 sudo 复制到生效位置
    3. 删除远端临时公钥
  任一步骤失败即中止后续步骤，并尽量清理远端临时文件

安装失败不影响连接本身。
"""
from __future__ import annotations

import shlex
from abc import ABC, abstractmethod
from pathlib import Path

from loguru import logger

from ssh_connect.exceptions import KeyInstallError, RegistryWriteError
from ssh_connect.host_registry import HostRecord, HostRegistry
from ssh_connect.host_resolver import JumpRoute
from ssh_connect.prompts import Prompter
from ssh_connect.settings import SSHConnectSettings
from ssh_connect.ssh_transport import OpenSSHTransport, SSHTarget
from ssh_connect.types import DeviceKind, KeyInstallOutcome


def detect_device_kind(banner: str, signatures: list[str]) -> DeviceKind:
    """根据连接横幅判断设备类型。"""
    if any(sig and sig in banner for sig in signatures):
        return "restricted"
    return "standard"


class KeyInstaller(ABC):
    kind: DeviceKind

    def __init__(
        self,
        *,
        settings: SSHConnectSettings,
        transport: OpenSSHTransport,
        prompter: Prompter,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._prompter = prompter

    @abstractmethod
    def install(self, target: SSHTarget, jump: JumpRoute | None, key_path: Path) -> None:
        """安装公钥，失败时抛出 KeyInstallError。"""


class StandardKeyInstaller(KeyInstaller):
    kind: DeviceKind = "standard"

    def install(self, target: SSHTarget, jump: JumpRoute | None, key_path: Path) -> None:
        result = self._transport.copy_id(target, jump, key_path)
        if not result.ok:
            raise KeyInstallError(
                "SSH公钥安装失败",
                step="ssh-copy-id",
                key_path=str(key_path),
                details={"returncode": result.returncode},
            )


class RestrictedDeviceKeyInstaller(KeyInstaller):
    kind: DeviceKind = "restricted"

    def install(self, target: SSHTarget, jump: JumpRoute | None, key_path: Path) -> None:
        remote_tmp = self._settings.remote_temp_key_path

        self._prompter.say("正在上传公钥...")
        if not self._transport.upload(target, jump, key_path, remote_tmp).ok:
            self._cleanup(target, jump, remote_tmp)
            raise KeyInstallError("上传公钥到设备失败", step="upload", key_path=str(key_path))

        self._prompter.say("正在合并并加载 authorized_keys...")
        if not self._transport.run_remote(target, jump, self.merge_command(target.user, remote_tmp)).ok:
            self._cleanup(target, jump, remote_tmp)
            raise KeyInstallError(
                "在设备上合并 authorized_keys 失败", step="merge", key_path=str(key_path)
            )

        self._prompter.say("正在清理...")
        if not self._cleanup(target, jump, remote_tmp):
            logger.warning("远端临时公钥 {} 删除失败", remote_tmp)

    @staticmethod
    def merge_command(user: str, remote_tmp: str) -> str:
        live = shlex.quote(f"/home/{user}/.ssh/authorized_keys")
        staging = shlex.quote(f"/config/auth/{user}-authorized_keys")
        tmp = shlex.quote(remote_tmp)
        return (
            f"cat {live} > {staging};"
            f"cat {tmp} >> {staging};"
            f"sudo cp {staging} {live}"
        )

    def _cleanup(self, target: SSHTarget, jump: JumpRoute | None, remote_tmp: str) -> bool:
        return self._transport.run_remote(target, jump, f"rm -f {shlex.quote(remote_tmp)}").ok


class KeyProvisioner:
    """公钥安装流程。

    Attributes:
        _settings: ssh-connect 配置
        _registry: 主机注册表，安装成功后更新 KeyInstalled
    """

    def __init__(
        self,
        *,
        settings: SSHConnectSettings,
        registry: HostRegistry,
        transport: OpenSSHTransport,
        prompter: Prompter,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._transport = transport
        self._prompter = prompter

    def available_keys(self) -> list[Path]:
        ssh_dir = self._settings.ssh_dir
        if not ssh_dir.is_dir():
            return []
        return sorted(p for p in ssh_dir.rglob("*.pub") if p.is_file())

    def installer_for(self, kind: DeviceKind) -> KeyInstaller:
        cls = RestrictedDeviceKeyInstaller if kind == "restricted" else StandardKeyInstaller
        return cls(settings=self._settings, transport=self._transport, prompter=self._prompter)

    def offer_install(
        self,
        host: HostRecord,
        device_kind: DeviceKind,
        jump: JumpRoute | None,
    ) -> KeyInstallOutcome:
        """询问并执行公钥安装。

        Args:
            host: 目标主机记录
            device_kind: 设备类型，决定安装策略
            jump: 跳板机路由

        Returns:
            installed / declined / no_keys / failed
        """
        keys = self.available_keys()
        if not keys:
            self._prompter.say(f"在 {self._settings.ssh_dir} 中未找到公钥，跳过公钥安装。")
            return "no_keys"

        if not self._prompter.confirm("是否安装SSH公钥以实现免密码登录? (y/n): "):
            return "declined"

        self._prompter.say("可用的公钥:")
        self._prompter.numbered([k.name for k in keys])
        index = self._prompter.choose("输入要安装的公钥编号（其他任意输入取消）: ", len(keys))
        if index is None:
            self._prompter.say("选择无效，已取消公钥安装。")
            return "declined"

        key_path = keys[index]
        installer = self.installer_for(device_kind)
        self._prompter.say(f"正在安装公钥 '{key_path}'...")
        if installer.kind == "restricted":
            self._prompter.say("检测到受限设备，使用专用安装方式。")

        try:
            installer.install(SSHTarget.from_record(host), jump, key_path)
        except KeyInstallError as e:
            logger.warning("{} 公钥安装失败: {} ({})", host.name, e.message, e.step)
            self._prompter.error(f"错误: {e.message}")
            return "failed"

        self._prompter.say("公钥安装成功。")
        try:
            self._registry.mark_key_installed(host.name)
        except RegistryWriteError as e:
            self._prompter.error(f"错误: 无法更新公钥状态: {e.message}")
        logger.info("{} 已安装公钥 {} ({})", host.name, key_path.name, installer.kind)
        return "installed"
