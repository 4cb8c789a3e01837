"""Dead Letter Queue handler for rejected activity events."""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from aiokafka import AIOKafkaProducer

from .dispatcher import DispatchResult

logger = structlog.get_logger(__name__)


class DLQHandler:
    """Publishes rejected events to the dead-letter topic.

    Rejecting an event means it is published here and then its offset is
    committed, so it is never redelivered to the consumer group.
    """

    def __init__(self, producer: AIOKafkaProducer, service_name: str, dlq_topic: str):
        """Initialize DLQ handler.

        Args:
            producer: Kafka producer instance
            service_name: Name of the service recorded in error metadata
            dlq_topic: Topic receiving rejected events
        """
        self.producer = producer
        self.service_name = service_name
        self.dlq_topic = dlq_topic

    def build_message(
        self, original_message: Any, source_topic: str, result: DispatchResult
    ) -> dict:
        error = result.error
        return {
            "original_message": original_message,
            "error_metadata": {
                "service": self.service_name,
                "source_topic": source_topic,
                "activity_id": result.activity_id,
                "error_type": type(error).__name__ if error else None,
                "error_message": str(error) if error else None,
                "failed_state": result.failed_state.value if result.failed_state else None,
                "failed_at": datetime.now(timezone.utc).isoformat(),
            },
            "schema_version": "v1",
        }

    async def send_to_dlq(
        self, original_message: Any, source_topic: str, result: DispatchResult
    ) -> bool:
        """Send a rejected event to the DLQ topic.

        Returns:
            True if successfully sent to DLQ, False otherwise
        """
        try:
            await self.producer.send_and_wait(
                self.dlq_topic,
                value=self.build_message(original_message, source_topic, result),
                key=self._extract_key(original_message),
            )

            logger.warning(
                "Activity event sent to DLQ",
                activity_id=result.activity_id,
                source_topic=source_topic,
                dlq_topic=self.dlq_topic,
                error_type=type(result.error).__name__,
            )
            return True

        except Exception as dlq_error:
            logger.error(
                "Failed to send activity event to DLQ",
                activity_id=result.activity_id,
                dlq_topic=self.dlq_topic,
                dlq_error=str(dlq_error),
                original_error=str(result.error),
            )
            return False

    @staticmethod
    def _extract_key(message: Any) -> Optional[str]:
        """Partition DLQ records by activity id when available."""
        if isinstance(message, dict) and message.get("id") is not None:
            return str(message["id"])
        return None
