"""Room protocol: index, lifecycle, messages and mutual-room reconciliation."""

from duochat.rooms.index import RoomIndex
from duochat.rooms.manager import RoomManager
from duochat.rooms.messages import MessageLog, MessageSubscription, messages_collection
from duochat.rooms.reconciler import MutualRoomReconciler

__all__ = [
    "RoomIndex",
    "RoomManager",
    "MessageLog",
    "MessageSubscription",
    "MutualRoomReconciler",
    "messages_collection",
]
