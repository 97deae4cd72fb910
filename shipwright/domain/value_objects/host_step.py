from enum import Enum


class HostStep(Enum):
    """Named points of the per-host pipeline, recorded as the failure point."""
    CONNECT = "connect"
    BACKUP = "backup"
    DRAIN = "drain"
    STOP = "stop"
    STAGE = "stage"
    INSTALL = "install"
    START = "start"
    PORT_WAIT = "port-wait"
    VERIFY = "verify"
    REGISTER = "register"
    RESTORE = "restore"

    def __str__(self) -> str:
        return self.value
