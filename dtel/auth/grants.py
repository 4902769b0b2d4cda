"""
Grant claims carried inside access tokens.

The JWT payload uses the wire names clients expect (``video``,
``sha256``, ``webHookURL``); Python code uses snake_case attributes.
Identity is not part of the payload body: it travels as ``sub``/``jti``.
"""

import re
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import ConfigurationError

# 6 hours
DEFAULT_TTL = 6 * 60 * 60

# Claims managed by the JWT layer rather than the grant model
REGISTERED_CLAIMS = frozenset({"iss", "sub", "aud", "exp", "nbf", "iat", "jti"})


class VideoGrant(BaseModel):
    """
    Room capabilities granted to a participant.

    Only ``room_join`` is inspected by dtel; unknown permissions are kept
    as-is so newer grant fields survive a sign/verify round trip.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    room_create: Optional[bool] = Field(default=None, alias="roomCreate")
    room_join: Optional[bool] = Field(default=None, alias="roomJoin")
    room_list: Optional[bool] = Field(default=None, alias="roomList")
    room_record: Optional[bool] = Field(default=None, alias="roomRecord")
    room_admin: Optional[bool] = Field(default=None, alias="roomAdmin")
    room: Optional[str] = None
    can_publish: Optional[bool] = Field(default=None, alias="canPublish")
    can_subscribe: Optional[bool] = Field(default=None, alias="canSubscribe")
    can_publish_data: Optional[bool] = Field(default=None, alias="canPublishData")
    can_update_own_metadata: Optional[bool] = Field(default=None, alias="canUpdateOwnMetadata")
    hidden: Optional[bool] = None
    recorder: Optional[bool] = None

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ClaimGrants(BaseModel):
    """The signed claim set of an access token."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    identity: Optional[str] = None
    name: Optional[str] = None
    metadata: Optional[str] = None
    content_hash: Optional[str] = Field(default=None, alias="sha256")
    webhook_url: Optional[str] = Field(default=None, alias="webHookURL")
    video: Optional[VideoGrant] = None

    @property
    def requests_join(self) -> bool:
        """True if the video grant asks for room join."""
        return bool(self.video and self.video.room_join)

    def to_payload(self) -> Dict[str, Any]:
        """JWT payload body (identity excluded, carried as sub/jti)."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"identity"})

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ClaimGrants":
        """Rebuild claims from a decoded JWT payload."""
        data = {k: v for k, v in payload.items() if k not in REGISTERED_CLAIMS}
        data.pop("identity", None)
        return cls(identity=payload.get("sub"), **data)


# ============ TTL parsing ============

_SECOND = 1.0
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR
_WEEK = 7 * _DAY
_YEAR = 365.25 * _DAY

_UNITS = {
    "years": _YEAR, "year": _YEAR, "yrs": _YEAR, "yr": _YEAR, "y": _YEAR,
    "weeks": _WEEK, "week": _WEEK, "w": _WEEK,
    "days": _DAY, "day": _DAY, "d": _DAY,
    "hours": _HOUR, "hour": _HOUR, "hrs": _HOUR, "hr": _HOUR, "h": _HOUR,
    "minutes": _MINUTE, "minute": _MINUTE, "mins": _MINUTE, "min": _MINUTE, "m": _MINUTE,
    "seconds": _SECOND, "second": _SECOND, "secs": _SECOND, "sec": _SECOND, "s": _SECOND,
    "milliseconds": 0.001, "millisecond": 0.001, "msecs": 0.001, "msec": 0.001, "ms": 0.001,
}

_TTL_PATTERN = re.compile(r"^(\d*\.?\d+)\s*([a-z]*)$", re.IGNORECASE)


def parse_ttl(ttl: Union[int, float, str, None]) -> float:
    """
    Convert a token lifetime to seconds.

    Numbers are seconds. Strings are time spans such as ``"10h"``,
    ``"2 days"`` or ``"90m"``; a string without a unit is milliseconds.
    """
    if ttl is None:
        return float(DEFAULT_TTL)

    if isinstance(ttl, bool):
        raise ConfigurationError(f"invalid ttl: {ttl!r}")

    if isinstance(ttl, (int, float)):
        seconds = float(ttl)
    elif isinstance(ttl, str):
        match = _TTL_PATTERN.match(ttl.strip())
        if not match:
            raise ConfigurationError(f"invalid ttl: {ttl!r}")
        value, unit = match.groups()
        unit = unit.lower() or "ms"
        if unit not in _UNITS:
            raise ConfigurationError(f"unknown ttl unit: {unit!r}")
        seconds = float(value) * _UNITS[unit]
    else:
        raise ConfigurationError(f"invalid ttl: {ttl!r}")

    if seconds <= 0:
        raise ConfigurationError(f"ttl must be positive: {ttl!r}")
    return seconds
