from eventhub.realtime.registry import ConnectionRegistry
from eventhub.realtime.relay import RealtimeRelay

__all__ = ["ConnectionRegistry", "RealtimeRelay"]
