from __future__ import annotations

from collections.abc import Callable, Sequence

from ssh_connect.connection_orchestrator import ConnectionOrchestrator
from ssh_connect.constants import JUMP_ICON, KEY_ICON
from ssh_connect.exceptions import AuthFailedError, JumpHostError, RegistryError
from ssh_connect.host_registry import HostRecord, HostRegistry
from ssh_connect.prompts import Prompter
from ssh_connect.ssh_transport import ForwardSpec

_PROMPT = "输入主机编号, 'h' 查看帮助, 'q' 退出: "


def display_label(record: HostRecord) -> str:
    label = record.name
    if record.key_installed:
        label = f"{KEY_ICON} {label}"
    if record.has_jump_host:
        label = f"{label} {JUMP_ICON}"
    return label


class HostMenu:
    """按最近连接时间排序的交互式主机菜单。

    单次连接失败（跳板机错误、认证失败）只提示错误并重新等待输入，不退出菜单。
    """

    def __init__(
        self,
        *,
        registry: HostRegistry,
        orchestrator: ConnectionOrchestrator,
        prompter: Prompter,
        usage: Callable[[], str],
    ) -> None:
        self._registry = registry
        self._orchestrator = orchestrator
        self._prompter = prompter
        self._usage = usage

    def render(self, records: Sequence[HostRecord]) -> None:
        self._prompter.say("可用主机:")
        self._prompter.numbered([display_label(r) for r in records])

    def run(self, forwards: Sequence[ForwardSpec] = ()) -> int:
        records = self._registry.load()
        self.render(records)
        if not records:
            self._prompter.say("配置文件中没有主机。")
            return 1

        while True:
            try:
                selection = self._prompter.ask(_PROMPT)
            except EOFError:
                self._prompter.say()
                return 0

            if selection in ("h", "help"):
                self._prompter.say(self._usage())
                self._prompter.say("\n---")
                self.render(records)
                continue
            if selection in ("q", "quit"):
                self._prompter.say("退出。")
                return 0
            if selection.isascii() and selection.isdigit():
                index = int(selection)
                if not 1 <= index <= len(records):
                    self._prompter.say(f"选择无效，请输入 1 到 {len(records)} 之间的数字。")
                    continue
                try:
                    self._orchestrator.connect(records[index - 1], forwards)
                except (JumpHostError, AuthFailedError, RegistryError) as e:
                    self._prompter.failure(e)
                    continue
                return 0
            self._prompter.say("输入无效，请输入编号、'h' 查看帮助或 'q' 退出。")
