# src/polistore/identity.py
"""
Identity scheme for persistable entities.

Every entity id is hierarchical::

    <TypePrefix>/<ns-country>/<ns-body>/<SessionCode>/<ObjectCode...>

    BIL/us/congress/118/hr/8580
    LEG/us/ca/2023/ocd-person-1234

The first four segments form the *storage bucket* (one type, one namespace,
one session), which is the partition scope for bucket-scoped scans and for
the secondary indexes of the indexed tier.

Everything in this module is a pure function of its arguments.
"""

from __future__ import annotations

import math
from datetime import date
from enum import Enum
from typing import NamedTuple

from .exceptions import MalformedIdentifierError

ID_SEPARATOR = "/"

# prefix + two namespace segments + session + at least one object segment
MIN_ID_SEGMENTS = 5

# segments kept by storage_bucket(): prefix, namespace (2), session
BUCKET_SEGMENTS = 4

NULL_SEGMENT = "null"

HOT_DECAY_PER_DAY = 0.02


class LegislativeNamespace(str, Enum):
    """Legislative bodies an entity can belong to, keyed by their id segments."""

    US_CONGRESS = "us/congress"
    US_ALABAMA = "us/al"
    US_ALASKA = "us/ak"
    US_ARIZONA = "us/az"
    US_ARKANSAS = "us/ar"
    US_CALIFORNIA = "us/ca"
    US_COLORADO = "us/co"
    US_CONNECTICUT = "us/ct"
    US_DELAWARE = "us/de"
    US_FLORIDA = "us/fl"
    US_GEORGIA = "us/ga"
    US_HAWAII = "us/hi"
    US_IDAHO = "us/id"
    US_ILLINOIS = "us/il"
    US_INDIANA = "us/in"
    US_IOWA = "us/ia"
    US_KANSAS = "us/ks"
    US_KENTUCKY = "us/ky"
    US_LOUISIANA = "us/la"
    US_MAINE = "us/me"
    US_MARYLAND = "us/md"
    US_MASSACHUSETTS = "us/ma"
    US_MICHIGAN = "us/mi"
    US_MINNESOTA = "us/mn"
    US_MISSISSIPPI = "us/ms"
    US_MISSOURI = "us/mo"
    US_MONTANA = "us/mt"
    US_NEBRASKA = "us/ne"
    US_NEVADA = "us/nv"
    US_NEW_HAMPSHIRE = "us/nh"
    US_NEW_JERSEY = "us/nj"
    US_NEW_MEXICO = "us/nm"
    US_NEW_YORK = "us/ny"
    US_NORTH_CAROLINA = "us/nc"
    US_NORTH_DAKOTA = "us/nd"
    US_OHIO = "us/oh"
    US_OKLAHOMA = "us/ok"
    US_OREGON = "us/or"
    US_PENNSYLVANIA = "us/pa"
    US_RHODE_ISLAND = "us/ri"
    US_SOUTH_CAROLINA = "us/sc"
    US_SOUTH_DAKOTA = "us/sd"
    US_TENNESSEE = "us/tn"
    US_TEXAS = "us/tx"
    US_UTAH = "us/ut"
    US_VERMONT = "us/vt"
    US_VIRGINIA = "us/va"
    US_WASHINGTON = "us/wa"
    US_WASHINGTON_DC = "us/dc"
    US_WEST_VIRGINIA = "us/wv"
    US_WISCONSIN = "us/wi"
    US_WYOMING = "us/wy"

    @classmethod
    def from_abbreviation(cls, abbr: str) -> "LegislativeNamespace":
        """Resolve ``"US"`` to Congress and a two letter state code to its namespace."""
        normalized = abbr.strip().lower()
        return cls("us/congress" if normalized == "us" else f"us/{normalized}")

    def to_abbreviation(self) -> str:
        if self is LegislativeNamespace.US_CONGRESS:
            return "US"
        return self.value.split(ID_SEPARATOR)[1].upper()


class ParsedId(NamedTuple):
    """The components of a hierarchical entity id."""

    prefix: str
    namespace: str
    session_code: str
    object_code: str


def _namespace_value(namespace: LegislativeNamespace | str) -> str:
    return namespace.value if isinstance(namespace, LegislativeNamespace) else namespace


def validate_id(identifier: str | None) -> str:
    """Check an id against the scheme and return it unchanged.

    Raises:
        MalformedIdentifierError: If the id is empty, has fewer than
            ``MIN_ID_SEGMENTS`` segments, or contains an empty or ``"null"``
            segment.
    """
    if not identifier or not isinstance(identifier, str):
        raise MalformedIdentifierError(identifier, "Identifier is empty.")

    segments = identifier.split(ID_SEPARATOR)
    if len(segments) < MIN_ID_SEGMENTS:
        raise MalformedIdentifierError(
            identifier,
            f"Identifier has {len(segments)} segments, expected at least {MIN_ID_SEGMENTS}.",
        )
    for segment in segments:
        if not segment or segment == NULL_SEGMENT:
            raise MalformedIdentifierError(identifier, "Identifier contains an empty or 'null' segment.")
    return identifier


def parse_id(identifier: str) -> ParsedId:
    """Split a validated id into prefix, namespace, session and object code."""
    segments = validate_id(identifier).split(ID_SEPARATOR)
    return ParsedId(
        prefix=segments[0],
        namespace=ID_SEPARATOR.join(segments[1:3]),
        session_code=segments[3],
        object_code=ID_SEPARATOR.join(segments[4:]),
    )


def storage_bucket(identifier: str) -> str:
    """Return the partition scope of an id: everything before the 4th separator."""
    segments = validate_id(identifier).split(ID_SEPARATOR)
    return ID_SEPARATOR.join(segments[:BUCKET_SEGMENTS])


def class_prefix(entity_type: type) -> str:
    """Return the fixed three letter id prefix of a persistable type.

    Raises:
        MalformedIdentifierError: If the type does not declare ``ID_CLASS_PREFIX``.
    """
    prefix = getattr(entity_type, "ID_CLASS_PREFIX", None)
    if not isinstance(prefix, str) or len(prefix) != 3 or not prefix.isalpha():
        raise MalformedIdentifierError(
            prefix, f"Type '{getattr(entity_type, '__name__', entity_type)}' has no valid ID_CLASS_PREFIX."
        )
    return prefix


def derive_id(
    prefix_or_type: str | type,
    namespace: LegislativeNamespace | str,
    session_code: str | int,
    *object_code: str | int,
) -> str:
    """Build an entity id from its components and validate the result."""
    prefix = prefix_or_type if isinstance(prefix_or_type, str) else class_prefix(prefix_or_type)
    parts = [prefix, _namespace_value(namespace), str(session_code), *(str(p) for p in object_code)]
    return validate_id(ID_SEPARATOR.join(parts))


def class_storage_bucket(
    prefix_or_type: str | type,
    namespace: LegislativeNamespace | str,
    session_code: str | int,
) -> str:
    """Return the storage bucket shared by all entities of a type in one session."""
    prefix = prefix_or_type if isinstance(prefix_or_type, str) else class_prefix(prefix_or_type)
    return ID_SEPARATOR.join([prefix, _namespace_value(namespace), str(session_code)])


def hot_score(
    impact_abs: float,
    since: date,
    today: date | None = None,
    decay_per_day: float = HOT_DECAY_PER_DAY,
) -> float:
    """Exponentially time-decayed impact magnitude.

    ``impact_abs * exp(-decay_per_day * age_in_days)``. Must be recomputed on
    every use, the value changes as days pass.
    """
    today = today or date.today()
    age_days = (today - since).days
    return abs(impact_abs) * math.exp(-decay_per_day * age_days)
