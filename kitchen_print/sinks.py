"""Device sinks: deliver encoded slips to physical printers through python-escpos."""

from __future__ import annotations

import logging
import subprocess
import sys
from typing import Protocol

from kitchen_print.errors import DeviceSendError

logger = logging.getLogger(__name__)

DEFAULT_NETWORK_PORT = 9100


class DeviceSink(Protocol):
    def send(self, data: bytes, destination: str) -> None:
        """Deliver one job; raise DeviceSendError when the destination refuses it."""

    def list_available_destinations(self) -> list[str]:
        ...


def check_printer_dependencies() -> tuple[bool, str]:
    """Check whether the printer library is importable."""
    try:
        import escpos.printer  # noqa: F401
    except ImportError as exc:
        return (False, f"Printer deps unavailable: {exc}")
    return (True, "Printer ready")


def _parse_usb_id(value: str) -> int:
    # Hex with or without the 0x prefix.
    return int(value, 16)


def open_printer(destination: str) -> object:
    """
    Build a python-escpos printer for a destination identifier.

    Supported forms:
    1. usb:VID:PID (hex ids, e.g. usb:0x28e9:0x0289)
    2. tcp:HOST[:PORT]
    3. file:/dev/usb/lp0
    4. cups:NAME, lp:NAME, win32:NAME
    5. a bare name, taken as a Windows print queue
    """
    from escpos import printer

    scheme, sep, rest = destination.partition(":")
    if not sep or len(scheme) == 1:
        # No scheme, or a Windows drive letter.
        return printer.Win32Raw(destination)

    scheme = scheme.lower()
    if scheme == "usb":
        vendor, _, product = rest.partition(":")
        if not vendor or not product:
            raise DeviceSendError(destination, "usb destinations need usb:VENDOR:PRODUCT")
        return printer.Usb(_parse_usb_id(vendor), _parse_usb_id(product))
    if scheme == "tcp":
        host, _, port = rest.lstrip("/").partition(":")
        return printer.Network(host, int(port) if port else DEFAULT_NETWORK_PORT)
    if scheme == "file":
        return printer.File(rest)
    if scheme == "cups":
        return printer.CupsPrinter(rest)
    if scheme == "lp":
        return printer.LP(rest)
    if scheme == "win32":
        return printer.Win32Raw(rest)
    return printer.Win32Raw(destination)


class EscposDeviceSink:
    """Send raw ESC/POS bytes; every job opens and closes its own connection."""

    def send(self, data: bytes, destination: str) -> None:
        try:
            from escpos.exceptions import Error as EscposError
        except ImportError as exc:
            raise DeviceSendError(destination, f"printer dependencies unavailable: {exc}") from exc

        try:
            device = open_printer(destination)
            try:
                device._raw(data)
            finally:
                device.close()
        except DeviceSendError:
            raise
        except (EscposError, OSError, ValueError) as exc:
            raise DeviceSendError(destination, str(exc) or type(exc).__name__) from exc
        logger.debug("job_sent destination=%r bytes=%d", destination, len(data))

    def list_available_destinations(self) -> list[str]:
        """Ask the OS print system for its printer names."""
        if sys.platform == "win32":
            command = ["wmic", "printer", "get", "name"]
        else:
            command = ["lpstat", "-e"]
        try:
            output = subprocess.run(command, capture_output=True, text=True, check=True, timeout=10).stdout
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("printer_listing_failed command=%r error=%s", command[0], exc)
            return []
        names = [line.strip() for line in output.splitlines()]
        return [name for name in names if name and name != "Name"]
