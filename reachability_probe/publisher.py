"""CloudEvents publisher for reachability probe results."""

import json
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import aio_pika
from tenacity import retry, stop_after_attempt, wait_exponential

from .prober import ProbeReport

logger = logging.getLogger(__name__)


class EventPublisher:
    """Publishes CloudEvents to RabbitMQ."""

    def __init__(
        self,
        rabbitmq_url: str,
        exchange_name: str,
        scan_id: str | None = None,
    ):
        self.rabbitmq_url = rabbitmq_url
        self.exchange_name = exchange_name
        self.connection: aio_pika.RobustConnection | None = None
        self.channel: aio_pika.Channel | None = None
        self._exchange: aio_pika.Exchange | None = None
        self._scan_id = scan_id

    @property
    def is_connected(self) -> bool:
        """Check if connected to RabbitMQ."""
        return (
            self.connection is not None
            and not self.connection.is_closed
            and self.channel is not None
            and not self.channel.is_closed
        )

    def set_scan_id(self, scan_id: str | None) -> None:
        """Set the scan_id used as CloudEvent subject."""
        self._scan_id = scan_id

    @retry(
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        reraise=True,
    )
    async def connect(self) -> None:
        """Establish connection to RabbitMQ with retry."""
        logger.info("Connecting to RabbitMQ")
        self.connection = await aio_pika.connect_robust(self.rabbitmq_url)
        self.channel = await self.connection.channel()
        self._exchange = None
        logger.info("Connected to RabbitMQ successfully")

    async def close(self) -> None:
        """Close RabbitMQ connection."""
        if self.channel:
            await self.channel.close()
        if self.connection:
            await self.connection.close()
        self._exchange = None
        logger.info("RabbitMQ connection closed")

    async def _get_exchange(self) -> aio_pika.Exchange:
        """Get or create the exchange."""
        if self._exchange is None:
            self._exchange = await self.channel.declare_exchange(
                self.exchange_name,
                aio_pika.ExchangeType.TOPIC,
                durable=True,
            )
        return self._exchange

    def _create_cloudevent(
        self,
        event_type: str,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """Create a CloudEvent envelope."""
        event = {
            "specversion": "1.0",
            "id": str(uuid4()),
            "source": "/collectors/reachability-probe",
            "type": event_type,
            "time": datetime.now(timezone.utc).isoformat(),
            "datacontenttype": "application/json",
            "data": data,
        }

        if self._scan_id:
            event["subject"] = self._scan_id

        return event

    async def publish_reachability_probed(self, report: ProbeReport) -> None:
        """
        Publish reachability probed event.

        CloudEvents type: discovery.reachability.probed
        Routing key: discovered.reachability
        """
        if not self.is_connected:
            logger.warning("Not connected to RabbitMQ, skipping publish")
            return

        data = {
            "probe_id": report.probe_id,
            "reachable": report.reachable,
            "checked": len(report.outcomes),
            "status_counts": report.status_counts(),
            "duration_ms": report.duration_ms,
            "probed_at": datetime.now(timezone.utc).isoformat(),
        }

        exchange = await self._get_exchange()
        event = self._create_cloudevent("discovery.reachability.probed", data)

        message = aio_pika.Message(
            body=json.dumps(event).encode(),
            content_type="application/cloudevents+json",
            message_id=event["id"],
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
        )

        await exchange.publish(message, routing_key="discovered.reachability")
        logger.info(
            f"Published reachability event for probe {report.probe_id} "
            f"({len(report.reachable)} reachable)"
        )
