from __future__ import annotations

from typing import Literal

DeviceKind = Literal["standard", "restricted"]
KeyInstallOutcome = Literal["installed", "declined", "no_keys", "failed"]
ConnectionState = Literal[
    "check_existing",
    "establish",
    "auth_stage1",
    "auth_stage2",
    "success",
    "failed",
]
LaunchMode = Literal["terminal", "current"]
ForwardFlag = Literal["-L", "-R"]
HostField = Literal[
    "name",
    "user",
    "hostname",
    "port",
    "last_connected_at",
    "key_installed",
    "jump_host_name",
    "is_jump_host",
]
