"""整文件事务写入模块

注册表的所有修改都走"读取 → 变换 → 原子替换"流程：
新内容先写入同目录下的临时文件，再通过 os.replace 原子替换目标文件，
避免写入中途失败导致文件被截断。

不提供跨进程互斥，两个进程并发修改时后写入者覆盖先写入者。
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Callable
from pathlib import Path

from loguru import logger

from ssh_connect.exceptions import RegistryWriteError


class TransactionalFile:
    """以整文件替换方式修改的文本文件。

    行内容保留原始换行符，未被变换函数修改的行写回时字节不变。
    无法按编码解码的字节以 surrogateescape 方式读入，写回时还原为原始字节。

    Attributes:
        path: 目标文件路径
    """

    def __init__(self, path: Path, *, encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self._encoding = encoding
        self._errors = "surrogateescape"

    def exists(self) -> bool:
        return self.path.is_file()

    def read_lines(self) -> list[str]:
        """读取全部行（保留行尾换行符）。

        Returns:
            行列表；文件不存在时返回空列表
        """
        if not self.exists():
            return []
        with self.path.open("r", encoding=self._encoding, errors=self._errors, newline="") as f:
            return f.readlines()

    def transform(self, func: Callable[[list[str]], list[str]]) -> None:
        """读取全部行，交给变换函数处理后原子写回。

        Args:
            func: 接收原始行列表并返回新行列表的函数

        Raises:
            RegistryWriteError: 写入或替换失败时抛出
        """
        lines = self.read_lines()
        self.replace("".join(func(lines)))

    def append_line(self, line: str) -> None:
        """在文件末尾追加一行，必要时先补全上一行的换行符。"""

        def _append(lines: list[str]) -> list[str]:
            if lines and not lines[-1].endswith(("\n", "\r")):
                lines[-1] += "\n"
            return [*lines, line.rstrip("\r\n") + "\n"]

        self.transform(_append)

    def replace(self, content: str) -> None:
        """以临时文件 + 原子重命名的方式写入全部内容。

        Args:
            content: 新的文件内容

        Raises:
            RegistryWriteError: 目录不可创建、文件不可写或替换失败时抛出
        """
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            mode = self.path.stat().st_mode & 0o777 if self.exists() else None
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding=self._encoding, errors=self._errors, newline="") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            if mode is not None:
                os.chmod(tmp_name, mode)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            logger.error("写入文件失败: {} ({})", self.path, e)
            raise RegistryWriteError(
                f"无法写入文件 '{self.path}': {e.strerror or e}",
                path=str(self.path),
            ) from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
