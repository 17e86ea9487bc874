"""Notifier interface and the log-only implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from salewatch.notify.models import Message, SaleAlert

logger = structlog.get_logger(__name__)


class NotificationError(Exception):
    """Delivery to the messaging endpoint failed."""


class BaseNotifier(ABC):
    """Delivers alerts to a single configured recipient."""

    @abstractmethod
    async def send_sale(self, alert: SaleAlert) -> None:
        """Deliver a sale alert. Raises NotificationError on failure."""
        pass

    @abstractmethod
    async def send_message(self, message: Message) -> None:
        """Deliver a summary message. Raises NotificationError on failure."""
        pass

    async def aclose(self) -> None:
        return None


class LogNotifier(BaseNotifier):
    """Writes alerts to the structured log instead of a chat platform."""

    async def send_sale(self, alert: SaleAlert) -> None:
        logger.info(
            "notify.sale",
            title=alert.title,
            item=alert.item,
            amount=alert.amount,
            group_id=alert.group_id,
            buyer=alert.buyer_name,
            occurred_at=alert.occurred_at.isoformat(),
        )

    async def send_message(self, message: Message) -> None:
        logger.info(
            "notify.message",
            title=message.title,
            description=message.description,
            fields={f.name: f.value for f in message.fields},
        )
