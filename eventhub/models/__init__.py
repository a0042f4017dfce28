from eventhub.models.base import Base
from eventhub.models.event import Event, EventCategory, EventStatus
from eventhub.models.event_participant import EventParticipant, ParticipantStatus
from eventhub.models.event_report import EventReport, ReportAction, ReportReason, ReportStatus
from eventhub.models.message import Message, MessageType, SystemAction
from eventhub.models.notification import Notification, NotificationPriority, NotificationType
from eventhub.models.user import User, UserRole

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Event",
    "EventCategory",
    "EventStatus",
    "EventParticipant",
    "ParticipantStatus",
    "EventReport",
    "ReportAction",
    "ReportReason",
    "ReportStatus",
    "Message",
    "MessageType",
    "SystemAction",
    "Notification",
    "NotificationPriority",
    "NotificationType",
]
