"""Alert sink protocol used by the position monitor."""
from typing import Protocol


class Notifier(Protocol):
    """Delivery channel for risk alerts and cycle summaries.

    ``send_alert`` carries per-position WARNING/CRITICAL/LIQUIDATABLE alerts and
    reports; ``send_log`` carries the low-priority summary of each monitoring
    cycle. Both return whether the message was delivered and may be dropped
    by the monitor if they exceed its delivery timeout.
    """

    async def send_alert(self, message: str, subject: str = "") -> bool: ...

    async def send_log(self, message: str, silent: bool = True) -> bool: ...
