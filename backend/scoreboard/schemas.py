"""Pydantic form schemas used by the page controllers.

HTML forms post every field as a string and send blanks for fields the
user left empty. The schemas normalise those raw values so the service
layer validates typed data and can echo the submission back on error.
"""

import datetime as dt
from typing import Dict, Optional

from pydantic import BaseModel, field_validator, model_validator


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _lenient_int(value):
    """Parse an integer form value, returning None for blank or garbage input."""
    value = _blank_to_none(value)
    if value is None or isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _lenient_date(value):
    value = _blank_to_none(value)
    if value is None or isinstance(value, dt.date):
        return value
    try:
        return dt.date.fromisoformat(str(value).strip())
    except ValueError:
        return None


class RegisterIn(BaseModel):
    """Payload for user registration/login forms."""
    username: str = ""
    password: str = ""

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, v):
        return (v or "").strip()

    @field_validator("password", mode="before")
    @classmethod
    def _none_password(cls, v):
        return v or ""


class EntryForm(BaseModel):
    """A submitted habit entry form.

    Unparseable numbers and dates become `None` and their raw text is kept
    in `unparsed` so the service can reject them and the form can show
    them again.
    """
    category_id: Optional[int] = None
    description: Optional[str] = None
    date: Optional[dt.date] = None
    duration: Optional[int] = None
    score: Optional[int] = None
    notes: Optional[str] = None
    custom_label: Optional[str] = None
    unparsed: Dict[str, str] = {}

    @model_validator(mode="before")
    @classmethod
    def _collect_unparsed(cls, data):
        if not isinstance(data, dict):
            return data
        unparsed = {}
        for field, parse in (("category_id", _lenient_int), ("duration", _lenient_int),
                             ("score", _lenient_int), ("date", _lenient_date)):
            raw = data.get(field)
            if _blank_to_none(raw) is not None and parse(raw) is None:
                unparsed[field] = str(raw)
        return {**data, "unparsed": unparsed}

    @field_validator("category_id", "duration", "score", mode="before")
    @classmethod
    def _ints(cls, v):
        return _lenient_int(v)

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, v):
        return _lenient_date(v)

    @field_validator("description", "notes", "custom_label", mode="before")
    @classmethod
    def _text(cls, v):
        v = _blank_to_none(v)
        return v.strip() if isinstance(v, str) else v
