from eventhub.api.v1.schemas.auth import (
    AuthOut,
    ChangePasswordIn,
    ForgotPasswordIn,
    LoginIn,
    RefreshIn,
    RegisterIn,
    ResetPasswordIn,
    TokenPair,
    UpdateProfileIn,
    UserOut,
    VerifyEmailIn,
)
from eventhub.api.v1.schemas.common import Pagination, UserSummary, build_pagination
from eventhub.api.v1.schemas.events import (
    EventCreate,
    EventFilters,
    EventOut,
    EventUpdate,
    ParticipantOut,
    ReportCreate,
)

__all__ = [
    "AuthOut",
    "ChangePasswordIn",
    "ForgotPasswordIn",
    "LoginIn",
    "RefreshIn",
    "RegisterIn",
    "ResetPasswordIn",
    "TokenPair",
    "UpdateProfileIn",
    "UserOut",
    "VerifyEmailIn",
    "Pagination",
    "UserSummary",
    "build_pagination",
    "EventCreate",
    "EventFilters",
    "EventOut",
    "EventUpdate",
    "ParticipantOut",
    "ReportCreate",
]
