from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from loguru import logger


Clock = Callable[[], datetime]
TIME_FMT = "%Y-%m-%d %H:%M"

CREDENTIAL_NOTES = {
    "Expired": "The device credentials have expired and need to be renewed.",
    "Corrupted": "The device credentials are corrupted and need to be regenerated.",
    "Missing": "The device credentials are missing and need to be created.",
    "Valid": "The device credentials are valid and working correctly.",
}


@dataclass
class DeviceState:
    device_id: str
    is_reporting: bool = False
    last_report_time: Optional[datetime] = None
    credential_status: str = "Expired"
    last_error: str = "Authentication failure"
    data_collection_enabled: bool = True
    is_enrolled: bool = True


@dataclass
class DeviceCredential:
    device_id: str
    status: str
    expiration_date: Optional[datetime] = None
    last_rotated: Optional[datetime] = None
    type: str = "Certificate"


@dataclass
class LogEntry:
    device_id: str
    timestamp: datetime
    level: str
    message: str


# (device, reporting, last report offset, credential status, last error,
#  credential expiry offset, credential rotated offset, logs[(offset, level, message)])
_SEED = [
    ("DEV001", False, timedelta(days=-4), "Expired", "Authentication failure",
     timedelta(days=-10), timedelta(days=-100), [
         (timedelta(days=-4, hours=1), "ERROR", "Authentication failed: Credentials expired"),
         (timedelta(days=-4), "INFO", "Last successful data collection"),
         (timedelta(days=-4, hours=-1), "INFO", "Device check-in successful"),
     ]),
    ("DEV002", False, timedelta(days=-5), "Corrupted", "Certificate validation error",
     timedelta(days=80), timedelta(days=-20), [
         (timedelta(days=-5, hours=2), "ERROR", "Certificate validation error: Corrupted certificate"),
         (timedelta(days=-5), "INFO", "Last successful data collection"),
         (timedelta(days=-5, hours=-2), "WARNING", "Certificate approaching expiration"),
     ]),
    ("DEV003", False, timedelta(days=-3), "Missing", "Credentials not found",
     None, None, [
         (timedelta(days=-3, hours=1), "ERROR", "Credentials not found: Missing authentication data"),
         (timedelta(days=-3), "INFO", "Last successful data collection"),
         (timedelta(days=-3, hours=-2), "INFO", "System reboot completed"),
     ]),
    ("DEV004", False, timedelta(days=-3), "Valid", "Network connectivity issue",
     timedelta(days=180), timedelta(days=-30), [
         (timedelta(days=-3, hours=1), "ERROR", "Network connectivity issue: Unable to reach server"),
         (timedelta(days=-3), "INFO", "Last successful data collection"),
         (timedelta(days=-3, hours=-3), "INFO", "Authentication successful"),
     ]),
    ("DEV005", True, timedelta(hours=-2), "Valid", "None",
     timedelta(days=270), timedelta(days=-10), [
         (timedelta(hours=-2), "INFO", "Data collection completed successfully"),
         (timedelta(hours=-12), "INFO", "Data collection completed successfully"),
         (timedelta(days=-1), "INFO", "Authentication successful"),
     ]),
]


@dataclass
class DeviceStore:
    """Single owning store for the simulated device fleet.

    Passed by reference to every plugin that reads or writes device state.
    """

    clock: Clock = datetime.now
    devices: Dict[str, DeviceState] = field(default_factory=dict)
    credentials: Dict[str, DeviceCredential] = field(default_factory=dict)
    logs: Dict[str, List[LogEntry]] = field(default_factory=dict)

    @classmethod
    def frozen(cls, at: Optional[datetime] = None) -> "DeviceStore":
        """Store whose clock is pinned to `at` (default: now), so re-seeded runs replay identically."""
        moment = at or datetime.now()
        return cls(clock=lambda: moment)

    def seed(self) -> "DeviceStore":
        now = self.clock()
        self.devices.clear()
        self.credentials.clear()
        self.logs.clear()
        for dev, reporting, last, cred, err, expires, rotated, logs in _SEED:
            self.devices[dev] = DeviceState(
                device_id=dev,
                is_reporting=reporting,
                last_report_time=now + last,
                credential_status=cred,
                last_error=err,
            )
            self.credentials[dev] = DeviceCredential(
                device_id=dev,
                status=cred,
                expiration_date=now + expires if expires is not None else None,
                last_rotated=now + rotated if rotated is not None else None,
            )
            self.logs[dev] = [LogEntry(dev, now + off, lvl, msg) for off, lvl, msg in logs]
        return self

    def set_credential_status(self, device_id: str, status: str) -> None:
        if device_id in self.devices:
            self.devices[device_id].credential_status = status
        if device_id in self.credentials:
            self.credentials[device_id].status = status


class ManagementPlugin:
    """Device management console: status, credentials and enrollment."""

    def __init__(self, store: DeviceStore) -> None:
        self.store = store

    def get_device_status(self, device_id: str) -> str:
        logger.info(f"plugin_call | fn=get_device_status device={device_id}")
        device = self.store.devices.get(device_id)
        if device is None:
            logger.warning(f"Device {device_id} not found in management system")
            return f"Device {device_id} not found in management system"
        last = device.last_report_time.strftime(TIME_FMT) if device.last_report_time else "Never"
        return (
            "Device Status:\n"
            f"Device ID: {device.device_id}\n"
            f"Reporting Status: {'Active' if device.is_reporting else 'Inactive'}\n"
            f"Last Report Time: {last}\n"
            f"Credential Status: {device.credential_status}\n"
            f"Last Error: {device.last_error}\n"
            f"Data Collection: {'Enabled' if device.data_collection_enabled else 'Disabled'}\n"
            f"Enrollment Status: {'Enrolled' if device.is_enrolled else 'Not Enrolled'}"
        )

    def check_credentials(self, device_id: str) -> str:
        """Short credential status ('Expired', 'Valid', ...) or a not-found message."""
        logger.info(f"plugin_call | fn=check_credentials device={device_id}")
        cred = self.store.credentials.get(device_id)
        if cred is not None:
            return cred.status
        device = self.store.devices.get(device_id)
        if device is None:
            logger.warning(f"Device {device_id} not found in management system")
            return "Unknown"
        return device.credential_status

    def describe_credentials(self, device_id: str) -> str:
        status = self.check_credentials(device_id)
        note = CREDENTIAL_NOTES.get(status, "Unknown credential status.")
        return f"Credential Status for Device {device_id}:\nStatus: {status}\n{note}"

    def update_credentials(self, device_id: str) -> str:
        logger.info(f"plugin_call | fn=update_credentials device={device_id}")
        device = self.store.devices.get(device_id)
        if device is None:
            logger.warning(f"Device {device_id} not found in management system")
            return f"Device {device_id} not found in management system"
        previous = device.credential_status
        self.store.set_credential_status(device_id, "Valid")
        device.last_error = "None"
        return (
            f"Credentials updated for Device {device_id}:\n"
            f"Previous Status: {previous}\n"
            "Current Status: Valid\n"
            "New credentials have been generated and configured on the device."
        )

    def enroll_device(self, device_id: str) -> str:
        logger.info(f"plugin_call | fn=enroll_device device={device_id}")
        device = self.store.devices.get(device_id)
        if device is None:
            self.store.devices[device_id] = DeviceState(
                device_id=device_id,
                last_report_time=self.store.clock(),
                credential_status="Valid",
                last_error="None",
            )
            return f"Device {device_id} has been created and enrolled."
        if device.is_enrolled:
            return f"Device {device_id} is already enrolled."
        device.is_enrolled = True
        return f"Device {device_id} has been enrolled."


class LogSearchPlugin:
    """Device log search: recent logs, collection checks, manual collection."""

    def __init__(self, store: DeviceStore) -> None:
        self.store = store

    def get_device_logs(self, device_id: str, days: int = 7) -> str:
        logger.info(f"plugin_call | fn=get_device_logs device={device_id} days={days}")
        entries = self.store.logs.get(device_id)
        if entries is None:
            logger.warning(f"No logs found for device {device_id}")
            return f"No logs found for device {device_id}"
        cutoff = self.store.clock() - timedelta(days=days)
        relevant = sorted((e for e in entries if e.timestamp >= cutoff), key=lambda e: e.timestamp, reverse=True)
        if not relevant:
            return f"No logs found for device {device_id} in the past {days} days"
        lines = [f"Logs for device {device_id} from the past {days} days:", ""]
        lines += [f"[{e.timestamp.strftime(TIME_FMT)}] [{e.level}] {e.message}" for e in relevant]
        return "\n".join(lines)

    def verify_data_collection(self, device_id: str) -> bool:
        """True when any data-collection log landed within the past day."""
        logger.info(f"plugin_call | fn=verify_data_collection device={device_id}")
        entries = self.store.logs.get(device_id)
        if entries is None:
            return False
        cutoff = self.store.clock() - timedelta(days=1)
        ok = any(e.timestamp >= cutoff and "data collection" in e.message.lower() for e in entries)
        logger.info(f"Data collection verification for device {device_id}: {ok}")
        return ok

    def perform_manual_collection(self, device_id: str) -> bool:
        logger.info(f"plugin_call | fn=perform_manual_collection device={device_id}")
        now = self.store.clock()
        entries = self.store.logs.setdefault(device_id, [])
        entries.append(LogEntry(device_id, now, "INFO", "Manual data collection initiated"))
        device = self.store.devices.get(device_id)
        # Network faults survive credential fixes
        if device is not None and "network" in device.last_error.lower():
            entries.append(LogEntry(device_id, now + timedelta(seconds=30), "ERROR",
                                    "Manual data collection failed: Network connectivity issue"))
            logger.warning(f"Manual data collection failed for device {device_id}")
            return False
        entries.append(LogEntry(device_id, now + timedelta(seconds=30), "INFO",
                                "Manual data collection completed successfully"))
        if device is not None:
            device.is_reporting = True
            device.last_report_time = now
        return True


class CredentialPlugin:
    """Credential vault: inspect, generate, validate and rotate device credentials."""

    def __init__(self, store: DeviceStore, validity_days: int = 365) -> None:
        self.store = store
        self.validity = timedelta(days=validity_days)

    def get_credential_status(self, device_id: str) -> str:
        logger.info(f"plugin_call | fn=get_credential_status device={device_id}")
        cred = self.store.credentials.get(device_id)
        if cred is None:
            return f"No credentials found for device {device_id}"
        now = self.store.clock()
        lines = [f"Credential Status for Device {device_id}:", f"Status: {cred.status}", f"Type: {cred.type}"]
        if cred.expiration_date is None:
            lines.append("Expiration Date: Not available")
        elif cred.expiration_date < now:
            lines.append(f"Expiration Date: {cred.expiration_date:%Y-%m-%d} (expired {(now - cred.expiration_date).days} days ago)")
        else:
            lines.append(f"Expiration Date: {cred.expiration_date:%Y-%m-%d} (expires in {(cred.expiration_date - now).days} days)")
        if cred.last_rotated is None:
            lines.append("Last Rotated: Never")
        else:
            lines.append(f"Last Rotated: {cred.last_rotated:%Y-%m-%d}")
        return "\n".join(lines)

    def generate_credentials(self, device_id: str) -> str:
        logger.info(f"plugin_call | fn=generate_credentials device={device_id}")
        now = self.store.clock()
        cred = self.store.credentials.get(device_id)
        previous = cred.status if cred else "Missing"
        self.store.credentials[device_id] = DeviceCredential(
            device_id=device_id,
            status="Valid",
            expiration_date=now + self.validity,
            last_rotated=now,
            type=cred.type if cred else "Certificate",
        )
        self.store.set_credential_status(device_id, "Valid")
        return (
            f"Credentials have been generated for device {device_id}. Previous status: {previous}, "
            f"New status: Valid, Expiration date: {now + self.validity:%Y-%m-%d}"
        )

    def validate_credentials(self, device_id: str) -> bool:
        logger.info(f"plugin_call | fn=validate_credentials device={device_id}")
        cred = self.store.credentials.get(device_id)
        if cred is None:
            return False
        return (
            cred.status == "Valid"
            and cred.expiration_date is not None
            and cred.expiration_date > self.store.clock()
        )

    def rotate_credentials(self, device_id: str) -> str:
        logger.info(f"plugin_call | fn=rotate_credentials device={device_id}")
        if device_id not in self.store.credentials:
            return f"No credentials found for device {device_id}"
        return self.generate_credentials(device_id)
