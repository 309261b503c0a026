"""Exception types raised across kitchen-print."""

from __future__ import annotations


class KitchenPrintError(Exception):
    """Base class for kitchen-print failures."""


class ConfigError(KitchenPrintError):
    """Invalid runtime configuration."""


class OrderFetchError(KitchenPrintError):
    """The order store could not return an order or its items."""


class SubscriptionError(KitchenPrintError):
    """The push change feed could not be opened or was lost."""


class DeviceSendError(KitchenPrintError):
    """A destination could not accept a print job."""

    def __init__(self, destination: str, reason: str) -> None:
        super().__init__(f"{destination}: {reason}")
        self.destination = destination
        self.reason = reason
