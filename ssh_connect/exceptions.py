"""ssh-connect 自定义异常模块

定义项目中使用的所有自定义异常类，提供结构化的错误处理。
异常层次结构：
    SSHConnectError (基类)
    ├── ConfigMissingError              - 主机注册表不存在且用户拒绝创建
    ├── ConfigFileError                 - 配置文件无法解析或取值非法
    ├── ParseError                      - 命令行参数格式错误
    │   └── InvalidConnectionStringError - 直连字符串不是 user@hostname 格式
    ├── RegistryError                   - 主机注册表相关错误
    │   ├── RegistryWriteError          - 注册表写入失败
    │   └── DuplicateHostError          - 主机名称重复
    ├── JumpHostError                   - 跳板机解析错误
    │   ├── JumpHostNotFoundError       - 跳板机不存在
    │   └── JumpHostNotAuthorizedError  - 目标主机未标记为跳板机
    ├── AuthFailedError                 - 两阶段认证均失败
    └── KeyInstallError                 - 公钥安装失败（非致命）
"""
from __future__ import annotations


class SSHConnectError(Exception):
    """ssh-connect 基础异常类。

    所有自定义异常的基类，提供统一的错误消息格式。

    Attributes:
        message: 用户友好的错误描述信息
        details: 可选的附加错误详情字典
    """

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        """初始化基础异常。

        Args:
            message: 用户友好的错误描述信息
            details: 可选的附加错误详情
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_error_dict(self) -> dict[str, object]:
        """将异常转换为结构化的错误字典。

        Returns:
            包含error_type、message和details的字典
        """
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigMissingError(SSHConnectError):
    """主机注册表缺失错误。

    当注册表文件不存在且用户拒绝创建模板文件时抛出。

    Attributes:
        path: 注册表文件路径
    """

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {"path": path, **(details or {})}
        super().__init__(message, details=merged_details)
        self.path = path


class ConfigFileError(SSHConnectError):
    """配置文件错误。

    JSON 配置文件无法解析、不是对象，或合并后的配置取值非法时抛出。

    Attributes:
        path: 出错的配置来源
    """

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {"path": path, **(details or {})}
        super().__init__(message, details=merged_details)
        self.path = path


class ParseError(SSHConnectError):
    """命令行解析错误。

    当参数缺少取值、出现未知选项或取值非法时抛出。

    Attributes:
        argument: 出错的参数
    """

    def __init__(
        self,
        message: str,
        *,
        argument: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {"argument": argument, **(details or {})}
        super().__init__(message, details=merged_details)
        self.argument = argument


class InvalidConnectionStringError(ParseError):
    """直连字符串格式错误。

    直连字符串必须严格为 user@hostname 格式。
    """


class RegistryError(SSHConnectError):
    """主机注册表错误。

    Attributes:
        path: 注册表文件路径
    """

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {"path": path, **(details or {})}
        super().__init__(message, details=merged_details)
        self.path = path


class RegistryWriteError(RegistryError):
    """注册表写入错误。

    当目录或文件不可写、临时文件替换失败时抛出。
    触发该错误的操作被中止，进程继续运行。
    """


class DuplicateHostError(RegistryError):
    """主机名称重复错误。

    写入时强制名称唯一，追加同名记录时抛出。

    Attributes:
        name: 重复的主机名称
    """

    def __init__(
        self,
        message: str,
        *,
        name: str = "",
        path: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, path=path, details={"name": name, **(details or {})})
        self.name = name


class JumpHostError(SSHConnectError):
    """跳板机解析错误。

    Attributes:
        jump_host_name: 引用的跳板机名称
    """

    def __init__(
        self,
        message: str,
        *,
        jump_host_name: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {"jump_host_name": jump_host_name, **(details or {})}
        super().__init__(message, details=merged_details)
        self.jump_host_name = jump_host_name


class JumpHostNotFoundError(JumpHostError):
    """引用的跳板机名称在注册表中不存在。"""


class JumpHostNotAuthorizedError(JumpHostError):
    """引用的主机存在，但未标记为跳板机(IsJumphost=0)。"""


class AuthFailedError(SSHConnectError):
    """认证失败错误。

    当密钥优先认证和纯密码认证两个阶段都失败时抛出。

    Attributes:
        host: 目标主机地址
        port: 目标SSH端口
        output: 连接过程中捕获的远端输出
    """

    def __init__(
        self,
        message: str,
        *,
        host: str = "",
        port: int = 22,
        output: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {"host": host, "port": port, "output": output, **(details or {})}
        super().__init__(message, details=merged_details)
        self.host = host
        self.port = port
        self.output = output


class KeyInstallError(SSHConnectError):
    """公钥安装错误。

    在安装流程内部抛出并被捕获，不会中断连接。

    Attributes:
        step: 失败的步骤名称
        key_path: 选择的公钥文件
    """

    def __init__(
        self,
        message: str,
        *,
        step: str = "",
        key_path: str = "",
        details: dict[str, object] | None = None,
    ) -> None:
        merged_details = {"step": step, "key_path": key_path, **(details or {})}
        super().__init__(message, details=merged_details)
        self.step = step
        self.key_path = key_path
