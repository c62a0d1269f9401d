from __future__ import annotations

DEFAULT_SSH_PORT = 22

# 注册表中表示"不使用跳板机"的哨兵值
NO_JUMP_HOST = "0"

# 注册表字段顺序：FriendlyName,User,Hostname,Port,Timestamp,KeyInstalled,JumpHostName,IsJumphost
REGISTRY_FIELDS: tuple[str, ...] = (
    "name",
    "user",
    "hostname",
    "port",
    "last_connected_at",
    "key_installed",
    "jump_host_name",
    "is_jump_host",
)

DEFAULT_CONTROL_PERSIST = "10s"
DEFAULT_REMOTE_TEMP_KEY_PATH = "/tmp/ssh_connect_key.pub"
DEFAULT_DEVICE_SIGNATURES: tuple[str, ...] = ("EdgeOS",)

KEY_ICON = "\U0001f511"
JUMP_ICON = "↪️"
