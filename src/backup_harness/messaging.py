"""
Record sources and producer for driving a backup pipeline under test.

A backup pipeline consumes from a RecordSource. Tests either hand it a
synthetic in-memory (optionally throttled) source, or produce generated
records to a real broker with RecordProducer and let the pipeline consume
them through KafkaRecordSource.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, runtime_checkable

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.structs import ConsumerRecord, RecordMetadata

from backup_harness.config import HarnessConfig
from backup_harness.models import DomainRecord, ProducerRecord
from backup_harness.throttle import to_producer_records
from core.logging import log_exception, log_with_context

logger = logging.getLogger(__name__)


@runtime_checkable
class RecordSource(Protocol):
    """Anything a backup pipeline can consume records from."""

    def __aiter__(self) -> AsyncIterator[DomainRecord]: ...


class InMemoryRecordSource:
    """Synthetic source over a fixed record list. Restartable."""

    def __init__(self, records: Iterable[DomainRecord]):
        self._records = list(records)

    def __len__(self) -> int:
        return len(self._records)

    async def __aiter__(self) -> AsyncIterator[DomainRecord]:
        for record in self._records:
            yield record


def consumer_record_to_domain(message: ConsumerRecord) -> DomainRecord:
    """Reduce an aiokafka ConsumerRecord to a DomainRecord."""
    timestamp = None
    if message.timestamp is not None and message.timestamp >= 0:
        timestamp = datetime.fromtimestamp(message.timestamp / 1000, tz=timezone.utc)
    return DomainRecord.from_bytes(
        topic=message.topic,
        partition=message.partition,
        offset=message.offset,
        key=message.key,
        value=message.value if message.value is not None else b"",
        timestamp=timestamp,
    )


class KafkaRecordSource:
    """
    Source backed by an aiokafka consumer.

    Each iteration starts a fresh consumer and stops it when the iteration
    ends. With `max_records` set, iteration ends after that many records;
    otherwise it runs until cancelled.

    Usage:
        source = KafkaRecordSource(config, group_id="backup-under-test")
        async for record in source:
            ...
    """

    def __init__(
        self,
        config: HarnessConfig,
        topics: Optional[Sequence[str]] = None,
        group_id: str = "backup-harness",
        max_records: Optional[int] = None,
        consumer_options: Optional[dict[str, Any]] = None,
    ):
        self.config = config
        self.topics = list(topics or [config.kafka_topic])
        self.group_id = group_id
        self.max_records = max_records
        self.consumer_options = {
            "auto_offset_reset": "earliest",
            "enable_auto_commit": True,
            **(consumer_options or {}),
        }

    async def __aiter__(self) -> AsyncIterator[DomainRecord]:
        consumer = AIOKafkaConsumer(
            *self.topics,
            bootstrap_servers=self.config.kafka_bootstrap_servers,
            group_id=self.group_id,
            **self.consumer_options,
        )
        await consumer.start()
        log_with_context(
            logger,
            logging.INFO,
            "Kafka record source started",
            topic=",".join(self.topics),
            bootstrap_servers=self.config.kafka_bootstrap_servers,
        )
        consumed = 0
        try:
            async for message in consumer:
                yield consumer_record_to_domain(message)
                consumed += 1
                if self.max_records is not None and consumed >= self.max_records:
                    break
        finally:
            await consumer.stop()
            log_with_context(
                logger,
                logging.INFO,
                "Kafka record source stopped",
                topic=",".join(self.topics),
                records=consumed,
            )


class RecordProducer:
    """
    Async Kafka producer for generated records.

    Usage:
        async with RecordProducer(config) as producer:
            await producer.publish(harness.emit(data.records, timedelta(seconds=1)))
    """

    def __init__(self, config: HarnessConfig):
        self.config = config
        self._producer: Optional[AIOKafkaProducer] = None
        self._started = False

        log_with_context(
            logger,
            logging.DEBUG,
            "Initialized record producer",
            bootstrap_servers=config.kafka_bootstrap_servers,
            topic=config.kafka_topic,
        )

    async def __aenter__(self) -> "RecordProducer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
        return False

    async def start(self) -> None:
        if self._started:
            logger.warning("Producer already started, ignoring duplicate start call")
            return

        producer_config = {
            "bootstrap_servers": self.config.kafka_bootstrap_servers,
            "acks": "all",
            **self.config.kafka_producer,
        }
        acks_value = producer_config.get("acks")
        if isinstance(acks_value, str) and acks_value.isdigit():
            producer_config["acks"] = int(acks_value)

        self._producer = AIOKafkaProducer(**producer_config)
        await self._producer.start()
        self._started = True

        log_with_context(
            logger,
            logging.INFO,
            "Record producer started",
            bootstrap_servers=self.config.kafka_bootstrap_servers,
        )

    async def stop(self) -> None:
        """Flush and stop. Errors while stopping are logged, not raised."""
        if not self._started or self._producer is None:
            logger.debug("Producer not started or already stopped")
            return

        try:
            await self._producer.flush()
            await self._producer.stop()
            logger.info("Record producer stopped")
        except Exception as e:
            log_exception(logger, e, "Error stopping record producer")
        finally:
            self._producer = None
            self._started = False

    def _require_started(self) -> AIOKafkaProducer:
        if not self._started or self._producer is None:
            raise RuntimeError("Producer not started. Call start() first.")
        return self._producer

    async def _enqueue(self, producer: AIOKafkaProducer, record: ProducerRecord) -> "asyncio.Future[RecordMetadata]":
        return await producer.send(
            record.topic,
            key=record.key,
            value=record.value,
            timestamp_ms=record.timestamp_ms,
        )

    async def send_records(self, records: Sequence[ProducerRecord]) -> list[RecordMetadata]:
        """
        Send producer records in order and wait for all acknowledgements.

        Returns:
            RecordMetadata in the same order as the input
        """
        producer = self._require_started()
        if not records:
            return []

        futures = [await self._enqueue(producer, record) for record in records]
        try:
            results = list(await asyncio.gather(*futures))
        except Exception as e:
            log_exception(logger, e, "Failed to send records", records=len(records))
            raise

        log_with_context(
            logger,
            logging.DEBUG,
            "Records sent",
            records=len(results),
        )
        return results

    async def publish(self, source: RecordSource, topic: Optional[str] = None) -> int:
        """
        Drain a record source into Kafka, preserving the source's pacing.

        Args:
            source: Records to publish (e.g. a ThrottledSource)
            topic: Topic override (default: config.kafka_topic)

        Returns:
            Number of records published

        Raises:
            InvalidEncodingError: If a record's key or value is not valid base64
        """
        producer = self._require_started()
        topic = topic or self.config.kafka_topic

        futures = []
        try:
            async for record in source:
                (producer_record,) = to_producer_records([record], topic=topic)
                futures.append(await self._enqueue(producer, producer_record))
        except Exception:
            # Settle sends already queued so their results are observed
            await asyncio.gather(*futures, return_exceptions=True)
            raise

        try:
            await asyncio.gather(*futures)
        except Exception as e:
            log_exception(logger, e, "Failed to publish records", topic=topic, records=len(futures))
            raise

        log_with_context(
            logger,
            logging.INFO,
            "Published records",
            topic=topic,
            records=len(futures),
        )
        return len(futures)


__all__ = [
    "RecordSource",
    "InMemoryRecordSource",
    "KafkaRecordSource",
    "RecordProducer",
    "consumer_record_to_domain",
]
