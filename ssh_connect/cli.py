"""命令行入口模块

用法：
    ssh-connect                                  交互式主机菜单
    ssh-connect <名称或user@hostname> [-p 端口] [-L 规则] [-R 规则]
    ssh-connect -h | --help
    ssh-connect -v | --version

-p/-L/-R 既可以分开写（-p 2222），也可以连写（-p2222、-L8080:localhost:80）。
"""
from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger

from ssh_connect import __version__
from ssh_connect.config_manager import ConfigManager
from ssh_connect.connection_orchestrator import ConnectionOrchestrator
from ssh_connect.direct_connection import DirectConnectionFlow
from ssh_connect.exceptions import (
    AuthFailedError,
    ConfigFileError,
    ConfigMissingError,
    InvalidConnectionStringError,
    JumpHostError,
    RegistryError,
)
from ssh_connect.host_registry import HostRegistry
from ssh_connect.host_resolver import HostResolver
from ssh_connect.key_provisioner import KeyProvisioner
from ssh_connect.logger import setup_logger
from ssh_connect.menu import HostMenu
from ssh_connect.prompts import Prompter
from ssh_connect.settings import SSHConnectSettings
from ssh_connect.ssh_transport import ForwardSpec, OpenSSHTransport

PROG = "ssh-connect"

DESCRIPTION = """\
简化 SSH 连接的小工具。

不带参数时显示按最近连接时间排序的主机菜单。
给出 <host> 时：如果它是注册表中的主机名称，使用保存的配置连接（忽略 -p）；
否则视为 user@hostname 直连字符串，连接前会询问是否保存。

支持 ssh 的端口转发参数 -L/-R（可重复）以及连接端口 -p，
取值既可以用空格分开（-p 2222），也可以直接连写（-p2222）。

首次连接成功后会提示安装公钥以实现免密码登录。
菜单中已安装公钥的主机标记为 🔑，经由跳板机连接的主机标记为 ↪️。
"""

EPILOG_TEMPLATE = """\
主机配置文件:
  {hosts_file}

  每行一个主机，逗号分隔（8 列）:
    Friendly Name,User,Hostname,Port,Timestamp,KeyInstalled,JumpHostName,IsJumphost

  - Friendly Name:  唯一的主机名称（如 "Web Server"）
  - User:           登录用户
  - Hostname:       主机名或IP地址
  - Port:           SSH端口
  - Timestamp:      最近连接的Unix时间戳（由程序维护）
  - KeyInstalled:   已安装公钥为 1，否则为 0
  - JumpHostName:   直接连接为 0，否则为另一台主机的 Friendly Name
  - IsJumphost:     允许被其他主机用作跳板机时为 1

终端命令 (SSH_CONNECT_TERMINAL_CMD):
  {terminal_cmd}

环境变量:
  SSH_CONNECT_HOSTS_FILE         主机配置文件路径
  SSH_CONNECT_TERMINAL_CMD       外部终端命令，如 "gnome-terminal --" 或 "xterm -e"
  SSH_CONNECT_DEVICE_SIGNATURES  受限设备横幅特征，逗号分隔（默认 EdgeOS）
  SSH_CONNECT_CONFIG_FILE        JSON 配置文件路径
"""


class _ForwardAction(argparse.Action):
    def __call__(self, parser, namespace, values, option_string=None) -> None:  # type: ignore[no-untyped-def]
        forwards = list(getattr(namespace, self.dest, None) or [])
        forwards.append(ForwardSpec(flag=option_string, spec=values))  # type: ignore[arg-type]
        setattr(namespace, self.dest, forwards)


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"无效的端口: {value!r}") from None
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"端口超出范围 1-65535: {port}")
    return port


def build_parser(settings: SSHConnectSettings | None = None) -> argparse.ArgumentParser:
    settings = settings or SSHConnectSettings()
    parser = argparse.ArgumentParser(
        prog=PROG,
        description=DESCRIPTION,
        epilog=EPILOG_TEMPLATE.format(
            hosts_file=settings.hosts_file,
            terminal_cmd=settings.terminal_cmd or "未设置（在当前终端中打开）",
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=__version__,
        help="显示版本号",
    )
    parser.add_argument(
        "host",
        nargs="?",
        metavar="HOST",
        help="注册表中的主机名称，或 user@hostname 直连字符串",
    )
    parser.add_argument(
        "-p",
        dest="port",
        type=_port,
        metavar="PORT",
        help="直连时使用的SSH端口（默认 22）",
    )
    for flag in ("-L", "-R"):
        parser.add_argument(
            flag,
            dest="forwards",
            action=_ForwardAction,
            default=[],
            metavar="SPEC",
            help=f"端口转发规则，原样传给 ssh {flag}（可重复）",
        )
    return parser


@dataclass(frozen=True)
class CliArguments:
    host: str | None
    port: int | None
    forwards: tuple[ForwardSpec, ...]


def parse_args(argv: Sequence[str], parser: argparse.ArgumentParser | None = None) -> CliArguments:
    """解析命令行参数。

    参数错误时 argparse 向标准错误输出用法与错误信息，并以退出码 2 退出。
    """
    parser = parser or build_parser()
    ns = parser.parse_args(list(argv))
    return CliArguments(host=ns.host, port=ns.port, forwards=tuple(ns.forwards or ()))


@dataclass
class Application:
    settings: SSHConnectSettings
    prompter: Prompter
    registry: HostRegistry
    resolver: HostResolver
    transport: OpenSSHTransport
    orchestrator: ConnectionOrchestrator

    @classmethod
    def build(
        cls,
        settings: SSHConnectSettings,
        *,
        prompter: Prompter | None = None,
        transport: OpenSSHTransport | None = None,
    ) -> Application:
        prompter = prompter or Prompter()
        transport = transport or OpenSSHTransport(settings=settings)
        registry = HostRegistry(settings=settings)
        resolver = HostResolver(registry)
        keys = KeyProvisioner(
            settings=settings,
            registry=registry,
            transport=transport,
            prompter=prompter,
        )
        orchestrator = ConnectionOrchestrator(
            settings=settings,
            registry=registry,
            resolver=resolver,
            transport=transport,
            key_provisioner=keys,
            prompter=prompter,
        )
        return cls(
            settings=settings,
            prompter=prompter,
            registry=registry,
            resolver=resolver,
            transport=transport,
            orchestrator=orchestrator,
        )


def run(argv: Sequence[str], app: Application) -> int:
    parser = build_parser(app.settings)
    args = parse_args(argv, parser)
    prompter = app.prompter

    if not app.transport.available():
        prompter.error(f"缺少依赖: {app.settings.ssh_binary}")
        return 10

    try:
        if not app.registry.ensure_exists(prompter):
            raise ConfigMissingError(
                f"没有主机配置文件 '{app.registry.path}'，无法继续",
                path=str(app.registry.path),
            )
    except (ConfigMissingError, RegistryError) as e:
        prompter.failure(e)
        return 1

    if args.host is None:
        menu = HostMenu(
            registry=app.registry,
            orchestrator=app.orchestrator,
            prompter=prompter,
            usage=parser.format_help,
        )
        return menu.run(args.forwards)

    try:
        record = app.resolver.resolve_by_name(args.host)
        if record is not None:
            if args.port is not None:
                logger.info("{} 在注册表中，忽略命令行端口 {}", record.name, args.port)
            app.orchestrator.connect(record, args.forwards)
            return 0

        flow = DirectConnectionFlow(
            registry=app.registry,
            resolver=app.resolver,
            transport=app.transport,
            orchestrator=app.orchestrator,
            prompter=prompter,
        )
        return flow.run(args.host, args.port, args.forwards)
    except InvalidConnectionStringError as e:
        prompter.error(f"错误: {e.message}")
        prompter.say(parser.format_help())
        return 1
    except (JumpHostError, AuthFailedError, RegistryError) as e:
        prompter.failure(e)
        return 1


def main(argv: Sequence[str] | None = None) -> int:
    try:
        config_manager = ConfigManager.load()
    except ConfigFileError as e:
        Prompter().failure(e)
        return 1
    setup_logger(config_manager.settings)
    app = Application.build(config_manager.settings)
    try:
        return run(sys.argv[1:] if argv is None else argv, app)
    except KeyboardInterrupt:
        print("\n已取消")
        return 130
    except EOFError:
        print()
        return 1
