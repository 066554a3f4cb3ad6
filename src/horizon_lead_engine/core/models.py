"""Lead and interaction records consumed by the scoring engine."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union


class InteractionType(Enum):
    """Known interaction types recorded against a lead."""

    EMAIL_SENT = "email_sent"
    SMS_SENT = "sms_sent"
    EMAIL_OPENED = "email_opened"
    EMAIL_CLICKED = "email_clicked"
    EMAIL_BOUNCED = "email_bounced"
    PHONE_CONTACT = "phone_contact"
    PHONE_CALL = "phone_call"
    FORM_COMPLETED = "form_completed"
    APPOINTMENT_SCHEDULED = "appointment_scheduled"
    DOCUMENT_SUBMITTED = "document_submitted"
    PHONE_INVALID = "phone_invalid"

    @classmethod
    def parse(cls, value: Any) -> Optional["InteractionType"]:
        """Return the matching type, or None for anything unrecognised."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


OUTREACH_TYPES = frozenset({InteractionType.EMAIL_SENT, InteractionType.SMS_SENT})
RESPONSE_TYPES = frozenset({
    InteractionType.EMAIL_OPENED,
    InteractionType.EMAIL_CLICKED,
    InteractionType.FORM_COMPLETED,
})
PHONE_CONTACT_TYPES = frozenset({InteractionType.PHONE_CONTACT, InteractionType.PHONE_CALL})

_TRUE_STRINGS = {"true", "yes", "y", "1", "on"}


def as_flag(value: Any) -> bool:
    """Coerce loosely-typed flag values (bools, ints, "yes"/"no") to bool."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp into a local naive datetime; None if it can't be read."""
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date; datetimes are truncated to their date."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass
class Lead:
    """A prospective resident as captured by the intake workflow."""

    id: Optional[str] = None
    name: str = ""
    email: str = ""
    phone: str = ""
    source: str = ""

    # Demographics
    is_veteran: bool = False
    in_recovery: bool = False
    is_reentry: bool = False
    has_family: bool = False
    household_size: int = 0
    employment_status: str = ""  # employed, seeking, other

    # Urgency
    currently_homeless: bool = False
    eviction_risk: bool = False
    housing_status: str = ""  # homeless, at_risk
    move_in_date: Optional[date] = None

    # Qualification
    income_verified: bool = False
    income_level: str = ""  # very_low, low, moderate, other
    references_provided: bool = False
    background_check_consent: bool = False

    # Contact channel state
    opted_out: bool = False
    email_bounced: bool = False
    phone_invalid: bool = False
    phone_contacted: bool = False
    appointment_scheduled: bool = False

    created_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_homeless(self) -> bool:
        return self.currently_homeless or self.housing_status == "homeless"

    @property
    def at_eviction_risk(self) -> bool:
        return self.eviction_risk or self.housing_status == "at_risk"

    @property
    def has_household(self) -> bool:
        return self.has_family or self.household_size > 1

    @property
    def is_employed(self) -> bool:
        return self.employment_status == "employed"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Lead":
        """Build a lead from a loosely-shaped record, treating gaps as unset."""
        known = set(cls.__dataclass_fields__)
        aliases = {"income_qualified", "unsubscribed"}
        raw_id = data.get("id")

        return cls(
            id=str(raw_id) if raw_id not in (None, "") else None,
            name=str(data.get("name") or ""),
            email=str(data.get("email") or ""),
            phone=str(data.get("phone") or ""),
            source=str(data.get("source") or ""),
            is_veteran=as_flag(data.get("is_veteran")),
            in_recovery=as_flag(data.get("in_recovery")),
            is_reentry=as_flag(data.get("is_reentry")),
            has_family=as_flag(data.get("has_family")),
            household_size=_as_int(data.get("household_size")),
            employment_status=str(data.get("employment_status") or "").lower(),
            currently_homeless=as_flag(data.get("currently_homeless")),
            eviction_risk=as_flag(data.get("eviction_risk")),
            housing_status=str(data.get("housing_status") or "").lower(),
            move_in_date=parse_date(data.get("move_in_date")),
            income_verified=as_flag(data.get("income_verified")) or as_flag(data.get("income_qualified")),
            income_level=str(data.get("income_level") or "").lower(),
            references_provided=as_flag(data.get("references_provided")),
            background_check_consent=as_flag(data.get("background_check_consent")),
            opted_out=as_flag(data.get("opted_out")) or as_flag(data.get("unsubscribed")),
            email_bounced=as_flag(data.get("email_bounced")),
            phone_invalid=as_flag(data.get("phone_invalid")),
            phone_contacted=as_flag(data.get("phone_contacted")),
            appointment_scheduled=as_flag(data.get("appointment_scheduled")),
            created_at=parse_timestamp(data.get("created_at")),
            extra={k: v for k, v in data.items() if k not in known and k not in aliases},
        )

    @classmethod
    def coerce(cls, value: Union["Lead", Mapping[str, Any], None]) -> "Lead":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls()
        return cls.from_dict(value)


@dataclass(frozen=True)
class Interaction:
    """An immutable touchpoint recorded against a lead."""

    type: str
    created_at: Optional[datetime] = None
    data: Dict[str, Any] = field(default_factory=dict)
    lead_id: Optional[str] = None

    @property
    def kind(self) -> Optional[InteractionType]:
        return InteractionType.parse(self.type)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Interaction":
        raw_type = data.get("type")
        if isinstance(raw_type, InteractionType):
            raw_type = raw_type.value
        lead_id = data.get("lead_id")
        return cls(
            type=str(raw_type or "").strip().lower(),
            created_at=parse_timestamp(data.get("created_at")),
            data=dict(data.get("data") or {}),
            lead_id=str(lead_id) if lead_id is not None else None,
        )

    @classmethod
    def coerce(cls, value: Union["Interaction", Mapping[str, Any]]) -> "Interaction":
        if isinstance(value, cls):
            return value
        return cls.from_dict(value)


def coerce_interactions(
    interactions: Optional[Iterable[Union[Interaction, Mapping[str, Any]]]]
) -> List[Interaction]:
    """Normalise an interaction log, skipping entries that aren't records at all."""
    if not interactions:
        return []
    result = []
    for item in interactions:
        if isinstance(item, Interaction):
            created_at = parse_timestamp(item.created_at)
            if created_at is not item.created_at:
                item = replace(item, created_at=created_at)
            result.append(item)
        elif isinstance(item, Mapping):
            result.append(Interaction.from_dict(item))
    return result
