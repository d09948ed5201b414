from .devices import (
    CredentialPlugin,
    DeviceCredential,
    DeviceState,
    DeviceStore,
    LogEntry,
    LogSearchPlugin,
    ManagementPlugin,
)
from .printer import PrinterPlugin, PrinterState

__all__ = [
    "CredentialPlugin",
    "DeviceCredential",
    "DeviceState",
    "DeviceStore",
    "LogEntry",
    "LogSearchPlugin",
    "ManagementPlugin",
    "PrinterPlugin",
    "PrinterState",
]
