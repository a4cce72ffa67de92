"""EmailGateway protocol — services depend on this, not the concrete implementation."""

from typing import Optional, Protocol


class EmailGateway(Protocol):
    async def send(
        self,
        to_address: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> Optional[str]:
        """Deliver one message. Returns a message id, or None on failure; never raises."""
        ...
