from __future__ import annotations

import sys
from collections.abc import Callable, Sequence
from typing import TextIO

from ssh_connect.exceptions import SSHConnectError


class Prompter:
    """终端交互封装，输入输出函数可注入以便测试。"""

    def __init__(
        self,
        *,
        input_func: Callable[[str], str] = input,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self._input = input_func
        self._stdout = stdout
        self._stderr = stderr

    def say(self, message: str = "") -> None:
        print(message, file=self._stdout or sys.stdout, flush=True)

    def error(self, message: str) -> None:
        print(message, file=self._stderr or sys.stderr, flush=True)

    def ask(self, message: str) -> str:
        return self._input(message).strip()

    def confirm(self, message: str) -> bool:
        return self.ask(message) in ("y", "Y")

    def choose(self, message: str, count: int) -> int | None:
        """读取 1..count 的编号，返回 0 起始下标；非数字或越界返回 None。"""
        answer = self.ask(message)
        if not (answer.isascii() and answer.isdigit()):
            return None
        index = int(answer)
        if 1 <= index <= count:
            return index - 1
        return None

    def numbered(self, items: Sequence[str]) -> None:
        for i, item in enumerate(items, start=1):
            self.say(f"{i:2d}. {item}")

    def failure(self, error: SSHConnectError) -> None:
        """输出错误信息，认证失败时附带捕获的远端输出。"""
        self.error(f"错误: {error.message}")
        output = getattr(error, "output", "")
        if output:
            self.error(output.rstrip("\n"))
