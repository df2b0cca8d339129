"""
Resource records returned by the Infogram API.

Decoding is strict: each known field is checked for its JSON type, URL
fields must parse as URLs (relative ones included) and timestamps must be
RFC 3339. Unknown fields are ignored and missing fields keep their defaults.
"""

import datetime
import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar
from urllib.parse import urlsplit

from .exceptions import DecodeError

T = TypeVar("T")


def _require_object(data: Any, kind: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise DecodeError(f"{kind} needs to be a JSON object")
    return data


def _int_field(data: Dict[str, Any], name: str, default: int = 0) -> int:
    value = data.get(name, default)
    # bool is an int subclass but not a JSON number
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"{name} needs to be an int", field=name)
    if isinstance(value, float):
        if not value.is_integer():
            raise DecodeError(f"{name} needs to be an int", field=name)
        value = int(value)
    return value


def _str_field(data: Dict[str, Any], name: str, default: str = "") -> str:
    value = data.get(name, default)
    if not isinstance(value, str):
        raise DecodeError(f"{name} needs to be an string", field=name)
    return value


def _bool_field(data: Dict[str, Any], name: str, default: bool = False) -> bool:
    value = data.get(name, default)
    if not isinstance(value, bool):
        raise DecodeError(f"{name} needs to be an boolean", field=name)
    return value


# ASCII control characters and broken percent escapes make a URL unparsable
_BAD_URL_RE = re.compile(r"[\x00-\x1f\x7f]|%(?![0-9A-Fa-f]{2})")

_RFC3339_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?"
    r"(?:([Zz])|([+-])(\d{2}):(\d{2}))\Z",
    re.ASCII
)


def _url_field(data: Dict[str, Any], name: str) -> Optional[str]:
    if data.get(name) is None:
        return None
    value = _str_field(data, name)
    if _BAD_URL_RE.search(value):
        raise DecodeError(f"{name} needs to be a parsable URL", field=name)
    try:
        urlsplit(value)
    except ValueError as e:
        raise DecodeError(f"{name} needs to be a parsable URL", field=name) from e
    return value


def parse_rfc3339(value: str) -> datetime.datetime:
    """
    Parse an RFC 3339 timestamp into an aware datetime.

    Fractional seconds of any length are accepted and truncated to
    microseconds.

    Raises:
        ValueError: If the value is not an RFC 3339 timestamp
    """
    match = _RFC3339_RE.match(value)
    if match is None:
        raise ValueError(f"invalid RFC 3339 timestamp: {value!r}")

    year, month, day, hour, minute, second, fraction, utc, sign, off_h, off_m = match.groups()
    if utc:
        tz = datetime.timezone.utc
    else:
        offset = datetime.timedelta(hours=int(off_h), minutes=int(off_m))
        tz = datetime.timezone(-offset if sign == "-" else offset)

    return datetime.datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second),
        int((fraction or "").ljust(6, "0")[:6]),
        tzinfo=tz
    )


def _time_field(data: Dict[str, Any], name: str) -> Optional[datetime.datetime]:
    if data.get(name) is None:
        return None
    value = _str_field(data, name)
    try:
        return parse_rfc3339(value)
    except ValueError as e:
        raise DecodeError(
            f"{name} needs to be a parsable RFC 3339 time", field=name
        ) from e


def format_rfc3339(value: datetime.datetime) -> str:
    """Format an aware datetime as RFC 3339, using 'Z' for UTC."""
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


@dataclass
class Infographic:
    """An infographic as returned by GET /infographics."""

    id: int = 0
    title: str = ""
    thumbnail_url: Optional[str] = None
    theme_id: int = 0
    published: bool = False
    date_modified: Optional[datetime.datetime] = None
    url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Infographic":
        """
        Decode an infographic from parsed JSON.

        Raises:
            DecodeError: If a field has the wrong type or format
        """
        data = _require_object(data, "infographic")
        return cls(
            id=_int_field(data, "id"),
            title=_str_field(data, "title"),
            thumbnail_url=_url_field(data, "thumbnail_url"),
            theme_id=_int_field(data, "theme_id"),
            published=_bool_field(data, "published"),
            date_modified=_time_field(data, "date_modified"),
            url=_url_field(data, "url"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "theme_id": self.theme_id,
            "published": self.published,
        }
        if self.thumbnail_url is not None:
            data["thumbnail_url"] = self.thumbnail_url
        if self.date_modified is not None:
            data["date_modified"] = format_rfc3339(self.date_modified)
        if self.url is not None:
            data["url"] = self.url
        return data

    @classmethod
    def from_json(cls, text: str) -> "Infographic":
        return cls.from_dict(_loads(text, "infographic"))

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class Theme:
    """A theme available to infographics, as returned by GET /themes."""

    id: int = 0
    title: str = ""
    thumbnail_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Theme":
        data = _require_object(data, "theme")
        return cls(
            id=_int_field(data, "id"),
            title=_str_field(data, "title"),
            thumbnail_url=_url_field(data, "thumbnail_url"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "title": self.title}
        if self.thumbnail_url is not None:
            data["thumbnail_url"] = self.thumbnail_url
        return data

    @classmethod
    def from_json(cls, text: str) -> "Theme":
        return cls.from_dict(_loads(text, "theme"))

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def _loads(text: str, kind: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise DecodeError(f"unmarshalling {kind}: {e}") from e


def list_of(model: Type[T]) -> Callable[[Any], List[T]]:
    """Return a decoder turning a JSON array into a list of ``model`` records."""
    def decode(data: Any) -> List[T]:
        if not isinstance(data, list):
            raise DecodeError(f"expected a JSON array of {model.__name__} records")
        return [model.from_dict(item) for item in data]

    decode.__name__ = f"list_of_{model.__name__}"
    return decode
