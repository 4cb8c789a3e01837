"""Kafka consumers feeding activity events to the dispatcher."""

import asyncio
from typing import Any, Dict, List, Optional

import orjson
import structlog
from aiokafka import AIOKafkaConsumer, AIOKafkaProducer, ConsumerRecord, TopicPartition
from aiokafka.errors import CommitFailedError, KafkaError

from .config import Settings, settings as default_settings
from .dispatcher import ActivityDispatcher, DispatchResult
from .dlq_handler import DLQHandler
from .models import ProcessingMetrics

logger = structlog.get_logger(__name__)


def decode_value(raw: Optional[bytes]) -> Any:
    """Decode a message value; undecodable bytes are passed on as text."""
    if raw is None:
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        return raw.decode("utf-8", errors="replace")


class ActivityEventConsumer:
    """Consumes activity events one at a time.

    Each event is acknowledged by committing its offset. Failed events are
    rejected: published to the DLQ topic, then committed, so they are not
    redelivered.
    """

    def __init__(
        self,
        dispatcher: ActivityDispatcher,
        settings: Optional[Settings] = None,
        client_id: Optional[str] = None,
    ):
        self.dispatcher = dispatcher
        self.settings = settings or default_settings
        self.client_id = client_id or self.settings.service_name

        self.consumer: Optional[AIOKafkaConsumer] = None
        self.producer: Optional[AIOKafkaProducer] = None
        self.dlq_handler: Optional[DLQHandler] = None
        self.processing_metrics = ProcessingMetrics()
        self._running = False
        self._current_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the Kafka consumer and the DLQ producer."""
        try:
            self.consumer = AIOKafkaConsumer(
                self.settings.kafka_input_topic,
                bootstrap_servers=self.settings.kafka_bootstrap_servers,
                group_id=self.settings.kafka_consumer_group,
                client_id=self.client_id,
                auto_offset_reset=self.settings.kafka_auto_offset_reset,
                enable_auto_commit=False,  # Offsets are committed per event
                max_poll_records=1,  # Process one message at a time
                session_timeout_ms=self.settings.kafka_session_timeout_ms,
                heartbeat_interval_ms=self.settings.kafka_heartbeat_interval_ms,
                max_poll_interval_ms=self.settings.kafka_max_poll_interval_ms,
            )

            self.producer = AIOKafkaProducer(
                bootstrap_servers=self.settings.kafka_bootstrap_servers,
                client_id=f"{self.client_id}-dlq",
                value_serializer=lambda v: orjson.dumps(v, default=str),
                key_serializer=lambda k: k.encode("utf-8") if k else None,
                acks="all",
            )

            await self.consumer.start()
            await self.producer.start()

            self.dlq_handler = DLQHandler(
                self.producer, self.settings.service_name, self.settings.kafka_dlq_topic
            )
            self._running = True
            logger.info(
                "Kafka consumer started",
                client_id=self.client_id,
                input_topic=self.settings.kafka_input_topic,
                dlq_topic=self.settings.kafka_dlq_topic,
                consumer_group=self.settings.kafka_consumer_group,
            )

        except Exception as e:
            logger.error("Failed to start Kafka consumer", error=str(e))
            raise

    async def stop(self) -> None:
        """Stop intake, let the in-flight event finish, then close clients."""
        self._running = False

        task = self._current_task
        if task and not task.done():
            logger.info(
                "Waiting for in-flight event before shutdown",
                client_id=self.client_id,
                grace_seconds=self.settings.shutdown_grace_seconds,
            )
            done, _ = await asyncio.wait({task}, timeout=self.settings.shutdown_grace_seconds)
            if not done:
                # Uncommitted, so the event is redelivered to another member
                logger.warning("In-flight event abandoned at shutdown", client_id=self.client_id)
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        if self.consumer:
            await self.consumer.stop()
        if self.producer:
            await self.producer.stop()

        logger.info("Kafka consumer stopped", client_id=self.client_id)

    async def _commit(self, message: ConsumerRecord) -> None:
        """Commit the offset following a handled message."""
        try:
            await self.consumer.commit(
                {TopicPartition(message.topic, message.partition): message.offset + 1}
            )
        except CommitFailedError as e:
            # Group rebalanced; the event will be seen again and the store
            # returns the already saved recommendation.
            logger.error(
                "Failed to commit offset",
                topic=message.topic,
                partition=message.partition,
                offset=message.offset,
                error=str(e),
            )

    async def handle_message(self, message: ConsumerRecord) -> DispatchResult:
        """Dispatch one message, then acknowledge or reject it."""
        logger.debug(
            "Received message",
            topic=message.topic,
            partition=message.partition,
            offset=message.offset,
        )
        payload = decode_value(message.value)
        result = await self.dispatcher.dispatch(payload)

        if not result.acked:
            await self.dlq_handler.send_to_dlq(payload, message.topic, result)

        await self._commit(message)
        self.processing_metrics.record(result.acked, result.processing_time_ms)
        return result

    async def consume(self) -> None:
        """Main consumer loop."""
        if not self.consumer or not self.producer:
            raise RuntimeError("Consumer not started")

        logger.info("Starting activity event consumption loop", client_id=self.client_id)

        async for message in self.consumer:
            if not self._running:
                break

            task = asyncio.create_task(self.handle_message(message))
            self._current_task = task
            try:
                # Shielded so that cancelling the loop leaves the event to stop()
                await asyncio.shield(task)
            except KafkaError as e:
                logger.error(
                    "Kafka error while processing message",
                    error=str(e),
                    error_type=type(e).__name__,
                    offset=message.offset,
                )
            except Exception as e:
                logger.error(
                    "Unexpected error while processing message",
                    error=str(e),
                    error_type=type(e).__name__,
                    offset=message.offset,
                    exc_info=True,
                )
            self._current_task = None

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy" if self._running else "stopped",
            "client_id": self.client_id,
            "in_flight": self._current_task is not None,
            "events_acked": self.processing_metrics.events_acked,
            "events_rejected": self.processing_metrics.events_rejected,
        }


class ConsumerPool:
    """Runs several ActivityEventConsumers in one consumer group.

    Kafka spreads the topic's partitions across the members, so each event
    is handled by exactly one consumer and each consumer commits its own
    partitions in order.
    """

    def __init__(
        self,
        dispatcher: ActivityDispatcher,
        settings: Optional[Settings] = None,
        concurrency: Optional[int] = None,
    ):
        self.settings = settings or default_settings
        size = concurrency or self.settings.consumer_concurrency
        if size < 1:
            raise ValueError("concurrency must be at least 1")
        self.consumers: List[ActivityEventConsumer] = [
            ActivityEventConsumer(
                dispatcher, self.settings, client_id=f"{self.settings.service_name}-{i}"
            )
            for i in range(size)
        ]
        self._tasks: List[asyncio.Task] = []

    async def start(self) -> None:
        for consumer in self.consumers:
            await consumer.start()

    async def run(self) -> None:
        """Start all consumers and consume until stopped."""
        await self.start()
        self._tasks = [asyncio.create_task(c.consume()) for c in self.consumers]
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("Consumer loop exited with error", error=str(result))

    async def stop(self) -> None:
        await asyncio.gather(*(c.stop() for c in self.consumers), return_exceptions=True)
        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Consumer pool stopped", size=len(self.consumers))

    def is_healthy(self) -> bool:
        return bool(self.consumers) and all(c.running for c in self.consumers)

    def metrics_summary(self) -> Dict[str, Any]:
        acked = sum(c.processing_metrics.events_acked for c in self.consumers)
        rejected = sum(c.processing_metrics.events_rejected for c in self.consumers)
        return {
            "consumers": len(self.consumers),
            "events_acked": acked,
            "events_rejected": rejected,
        }
