"""Test fixtures for in-memory implementations."""

from .fake_chain_client import FakeChainClient, new_address
from .fake_dispatcher import FakeDispatcher
from .in_memory_storage import InMemoryKeyValueStore
from .recording_receiver import RecordingReceiver

MASTER_KEY = "4f" * 32
CALLBACK_SECRET = "mpc-callback-secret-for-tests"

__all__ = [
    "CALLBACK_SECRET",
    "MASTER_KEY",
    "FakeChainClient",
    "FakeDispatcher",
    "InMemoryKeyValueStore",
    "RecordingReceiver",
    "new_address",
]
