"""
Backup harness.

Test support for Kafka-to-object-storage backup pipelines: ephemeral bucket
lifecycle, eventual-consistency polling, throttled synthetic traffic and the
backup object codec.
"""

from backup_harness.buckets import BucketLifecycleManager, CleanupRegistry
from backup_harness.codec import decode, encode, key_to_datetime, present
from backup_harness.config import HarnessConfig, load_config
from backup_harness.generators import GeneratedData, bucket_name, generate_records
from backup_harness.harness import BackupHarness
from backup_harness.models import DomainRecord, ProducerRecord
from backup_harness.throttle import ThrottledSource, emit, to_producer_records

__version__ = "0.1.0"

__all__ = [
    "BackupHarness",
    "BucketLifecycleManager",
    "CleanupRegistry",
    "HarnessConfig",
    "load_config",
    "DomainRecord",
    "ProducerRecord",
    "GeneratedData",
    "generate_records",
    "bucket_name",
    "ThrottledSource",
    "emit",
    "to_producer_records",
    "encode",
    "decode",
    "present",
    "key_to_datetime",
]
