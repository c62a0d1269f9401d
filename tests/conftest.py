from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from ssh_connect.host_registry import HostRegistry
from ssh_connect.host_resolver import JumpRoute
from ssh_connect.prompts import Prompter
from ssh_connect.settings import SSHConnectSettings
from ssh_connect.ssh_transport import CommandResult, ForwardSpec, OpenSSHTransport, SSHTarget


class ScriptedPrompter(Prompter):
    """按顺序返回预置回答的 Prompter，记录所有输出。"""

    def __init__(self, answers: Sequence[str] = ()) -> None:
        super().__init__()
        self.answers = list(answers)
        self.questions: list[str] = []
        self.lines: list[str] = []
        self.errors: list[str] = []

    def say(self, message: str = "") -> None:
        self.lines.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)

    def ask(self, message: str) -> str:
        self.questions.append(message)
        if not self.answers:
            raise EOFError
        return self.answers.pop(0).strip()

    @property
    def output(self) -> str:
        return "\n".join(self.lines)


class FakeTransport(OpenSSHTransport):
    """不执行任何外部命令的传输层，记录每次调用。"""

    def __init__(
        self,
        *,
        settings: SSHConnectSettings,
        master_alive: bool = False,
        master_results: Sequence[CommandResult] = (),
        probe_ok: bool = False,
        upload_ok: bool = True,
        remote_ok: Sequence[bool] = (),
        copy_id_ok: bool = True,
        launcher: list[str] | None = None,
    ) -> None:
        super().__init__(settings=settings)
        self.master_alive = master_alive
        self.master_results = list(master_results)
        self.probe_ok = probe_ok
        self.upload_ok = upload_ok
        self.remote_ok = list(remote_ok)
        self.copy_id_ok = copy_id_ok
        self.launcher = launcher
        self.calls: list[tuple] = []
        self.removed_sockets: list[SSHTarget] = []

    def available(self) -> bool:
        return True

    def check_master(self, target: SSHTarget, jump: JumpRoute | None) -> bool:
        self.calls.append(("check", target, jump))
        return self.master_alive

    def open_master(self, target, jump, *, password_only=False) -> CommandResult:
        self.calls.append(("open", target, jump, password_only))
        if self.master_results:
            return self.master_results.pop(0)
        return CommandResult(returncode=0)

    def probe_key_auth(self, target: SSHTarget) -> bool:
        self.calls.append(("probe", target))
        return self.probe_ok

    def remove_control_socket(self, target: SSHTarget) -> None:
        self.removed_sockets.append(target)

    def run_remote(self, target, jump, command) -> CommandResult:
        self.calls.append(("remote", target, jump, command))
        ok = self.remote_ok.pop(0) if self.remote_ok else True
        return CommandResult(returncode=0 if ok else 1)

    def upload(self, target, jump, local_path, remote_path) -> CommandResult:
        self.calls.append(("upload", target, jump, Path(local_path), remote_path))
        return CommandResult(returncode=0 if self.upload_ok else 1)

    def copy_id(self, target, jump, key_path) -> CommandResult:
        self.calls.append(("copy_id", target, jump, Path(key_path)))
        return CommandResult(returncode=0 if self.copy_id_ok else 1)

    def terminal_launcher(self) -> list[str] | None:
        return self.launcher

    def spawn_in_terminal(self, launcher, argv) -> None:
        self.calls.append(("spawn", list(launcher), list(argv)))

    def exec_session(self, argv: Sequence[str]) -> None:  # type: ignore[override]
        self.calls.append(("exec", list(argv)))

    def names(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def settings(tmp_path: Path) -> SSHConnectSettings:
    return SSHConnectSettings(
        hosts_file=tmp_path / "conf" / "hosts.conf",
        control_dir=tmp_path / "controlmasters",
        ssh_dir=tmp_path / "ssh",
        log_dir=tmp_path / "logs",
        terminal_cmd="",
        device_signatures=["EdgeOS"],
    )


@pytest.fixture
def write_registry(settings: SSHConnectSettings):
    def _write(*lines: str) -> HostRegistry:
        settings.hosts_file.parent.mkdir(parents=True, exist_ok=True)
        settings.hosts_file.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
        return HostRegistry(settings=settings)

    return _write


@pytest.fixture
def forwards() -> tuple[ForwardSpec, ...]:
    return (ForwardSpec(flag="-L", spec="8080:localhost:80"),)
