from __future__ import annotations

from enum import Enum


class InteractionType(str, Enum):
    EMAIL = "email"
    MEETING = "meeting"
    CALL = "call"
    LINKEDIN = "linkedin"
    WHATSAPP = "whatsapp"
    OTHER = "other"


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    NA = "na"


class TimelineEventType(str, Enum):
    EMAIL = "email"
    MEETING = "meeting"
    CALL = "call"
    NOTE = "note"
    LINKEDIN_MESSAGE = "linkedin_message"
    LINKEDIN_CONNECTION = "linkedin_connection"
    WHATSAPP = "whatsapp"
    OTHER = "other"


class SocialChannel(str, Enum):
    LINKEDIN_MESSAGE = "linkedin_message"
    LINKEDIN_CONNECTION = "linkedin_connection"
    WHATSAPP = "whatsapp"
    OTHER = "other"


class TriggerType(str, Enum):
    OVERDUE = "overdue"
    EXTERNAL_SIGNAL = "external-signal"
    GENERAL = "general"


class RecommendationState(str, Enum):
    ACTIVE = "active"
    SNOOZED = "snoozed"
    DISMISSED = "dismissed"
    EXPIRED = "expired"

    @property
    def is_open(self) -> bool:
        return self in (RecommendationState.ACTIVE, RecommendationState.SNOOZED)


class SignalType(str, Enum):
    JOB_CHANGE = "job_change"
    BIRTHDAY = "birthday"
    COMPANY_NEWS = "company_news"


class DuplicateCategory(str, Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    POTENTIAL = "potential"


class Period(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def days(self) -> int:
        match self:
            case Period.DAILY:
                return 1
            case Period.WEEKLY:
                return 7
            case Period.MONTHLY:
                return 30


OPEN_RECOMMENDATION_STATES = (RecommendationState.ACTIVE.value, RecommendationState.SNOOZED.value)
