"""
ssh-connect 主机连接管理工具

封装系统 OpenSSH 客户端，维护常用主机列表，支持连接复用、跳板机、
两阶段认证回退以及按设备类型的公钥安装。
"""

__version__ = "0.30.0"

__all__ = [
    "cli",
    "config_manager",
    "connection_orchestrator",
    "constants",
    "direct_connection",
    "exceptions",
    "file_transaction",
    "host_registry",
    "host_resolver",
    "key_provisioner",
    "logger",
    "menu",
    "prompts",
    "settings",
    "ssh_transport",
]
