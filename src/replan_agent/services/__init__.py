"""Coordination services shared by agent runs."""

from .cancellation import CancellationToken
from .correlation import CorrelationRegistry, new_correlation_id
from .gateway import CallbackHumanGateway, ConsoleHumanGateway, HumanInputGateway
from .intervention import InterventionCoordinator, normalize_response

__all__ = [
    "CallbackHumanGateway",
    "CancellationToken",
    "ConsoleHumanGateway",
    "CorrelationRegistry",
    "HumanInputGateway",
    "InterventionCoordinator",
    "new_correlation_id",
    "normalize_response",
]
