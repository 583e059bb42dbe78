"""Sample store contract and backends."""

from locatr.store.base import InsertCallback, InsertSubscription, SampleStore, SubscriptionRegistry
from locatr.store.memory import MemorySampleStore
from locatr.store.mqtt import MqttInsertFeed, decode_insert_event, encode_insert_event
from locatr.store.rest import PostgrestTransport, RestSampleStore

__all__ = [
    "InsertCallback",
    "InsertSubscription",
    "MemorySampleStore",
    "MqttInsertFeed",
    "PostgrestTransport",
    "RestSampleStore",
    "SampleStore",
    "SubscriptionRegistry",
    "decode_insert_event",
    "encode_insert_event",
]
