from enum import Enum


class ErrorCode(str, Enum):
    # Auth
    EMAIL_ALREADY_REGISTERED = "EMAIL_ALREADY_REGISTERED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_TOKEN = "INVALID_TOKEN"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    USER_BLOCKED = "USER_BLOCKED"
    INVALID_RESET_TOKEN = "INVALID_RESET_TOKEN"
    INVALID_VERIFICATION_TOKEN = "INVALID_VERIFICATION_TOKEN"
    WRONG_PASSWORD = "WRONG_PASSWORD"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Events
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    EVENT_NOT_APPROVED = "EVENT_NOT_APPROVED"
    EVENT_ALREADY_PROCESSED = "EVENT_ALREADY_PROCESSED"
    EVENT_ALREADY_STARTED = "EVENT_ALREADY_STARTED"
    EVENT_FULL = "EVENT_FULL"
    EVENT_NOT_OWNER = "EVENT_NOT_OWNER"
    INVALID_EVENT_TIMES = "INVALID_EVENT_TIMES"
    CAPACITY_BELOW_PARTICIPANTS = "CAPACITY_BELOW_PARTICIPANTS"
    INVALID_UPLOAD = "INVALID_UPLOAD"

    # Participation
    CREATOR_CANNOT_JOIN = "CREATOR_CANNOT_JOIN"
    ALREADY_PARTICIPANT = "ALREADY_PARTICIPANT"
    NOT_PARTICIPANT = "NOT_PARTICIPANT"

    # Reports
    REPORT_NOT_FOUND = "REPORT_NOT_FOUND"
    ALREADY_REPORTED = "ALREADY_REPORTED"
    INVALID_REPORT_TRANSITION = "INVALID_REPORT_TRANSITION"

    # Chat
    CHAT_DISABLED = "CHAT_DISABLED"
    CHAT_ACCESS_DENIED = "CHAT_ACCESS_DENIED"
    MESSAGE_NOT_FOUND = "MESSAGE_NOT_FOUND"
    INVALID_MESSAGE = "INVALID_MESSAGE"
    EDIT_WINDOW_EXPIRED = "EDIT_WINDOW_EXPIRED"
    SYSTEM_MESSAGE_IMMUTABLE = "SYSTEM_MESSAGE_IMMUTABLE"

    # Notifications
    NOTIFICATION_NOT_FOUND = "NOTIFICATION_NOT_FOUND"

    # Admin
    CANNOT_MODIFY_SELF = "CANNOT_MODIFY_SELF"
