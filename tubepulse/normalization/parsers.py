"""Format parsers for upstream field values.

Each parser accepts whatever the upstream happened to send and degrades to a
type-appropriate default instead of raising:

- parse_number: "1.5M", "150K", "2.3만", "3억", "1,234 views", 42 -> int
- normalize_duration: "1:23:45", "PT5M0S", "SHORTS", 125 -> ISO-8601 duration
- normalize_published_at: ISO timestamp or "3 days ago" / "3일 전" -> ISO-8601
- extract_thumbnail: highest-resolution image URL
- detect_kind: video / short / channel
"""

import calendar
import math
import re
from datetime import datetime, timedelta, timezone
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Optional

from tubepulse.normalization.extractor import FieldExtractor
from tubepulse.normalization.schema import VideoKind

# =============================================================================
# Numbers
# =============================================================================

# Korean tiers: checked before Latin suffixes; 천/만/억 never occur in K/M/B/T text
LOCAL_UNITS = {
    "억": Decimal(10) ** 8,
    "만": Decimal(10) ** 4,
    "천": Decimal(10) ** 3,
}

LATIN_UNITS = {
    "K": Decimal(10) ** 3,
    "M": Decimal(10) ** 6,
    "B": Decimal(10) ** 9,
    "T": Decimal(10) ** 12,
}

_DECIMAL = r"(\d+(?:\.\d+)?)"
_LOCAL_RE = re.compile(_DECIMAL + r"\s*(억|만|천)")
_LATIN_RE = re.compile(_DECIMAL + r"\s*([KMBT])(?![A-Z])")
_PLAIN_RE = re.compile(_DECIMAL)


def _floor_non_negative(value: Decimal) -> int:
    result = int(value.to_integral_value(rounding=ROUND_FLOOR))
    return max(0, result)


def parse_number(value: Any) -> int:
    """Parse a count that may carry a magnitude suffix.

    Returns 0 for anything that does not contain a number.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0
        return max(0, math.floor(value))
    if not isinstance(value, str):
        return 0

    text = value.strip().replace(",", "").upper()
    if not text:
        return 0

    try:
        match = _LOCAL_RE.search(text)
        if match:
            return _floor_non_negative(Decimal(match.group(1)) * LOCAL_UNITS[match.group(2)])

        match = _LATIN_RE.search(text)
        if match:
            return _floor_non_negative(Decimal(match.group(1)) * LATIN_UNITS[match.group(2)])

        match = _PLAIN_RE.search(text)
        if match:
            return _floor_non_negative(Decimal(match.group(1)))
    except InvalidOperation:
        return 0
    return 0


# =============================================================================
# Durations
# =============================================================================

SHORTS_SENTINEL = "SHORTS"
ZERO_DURATION = "PT0S"

_ISO_DURATION_RE = re.compile(
    r"^P(?=\d|T\d)(?:\d+D)?(?:T(?=\d)(?:\d+H)?(?:\d+M)?(?:\d+(?:\.\d+)?S)?)?$",
    re.IGNORECASE,
)
_CLOCK_RE = re.compile(r"^\d+(?::\d{1,2}){0,2}$")


def seconds_to_iso(total_seconds: int) -> str:
    """Format a non-negative second count as an ISO-8601 duration."""
    total_seconds = max(0, int(total_seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    iso = "PT"
    if hours:
        iso += f"{hours}H"
    if minutes:
        iso += f"{minutes}M"
    if seconds:
        iso += f"{seconds}S"
    return ZERO_DURATION if iso == "PT" else iso


def normalize_duration(value: Any) -> str:
    """Convert a duration to ISO-8601.

    ``""`` means unknown, not zero.
    """
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return seconds_to_iso(value) if value >= 0 else ""
    if isinstance(value, float):
        return seconds_to_iso(math.floor(value)) if math.isfinite(value) and value >= 0 else ""
    if not isinstance(value, str):
        return ""

    text = value.strip()
    if not text:
        return ""
    if text.upper() == SHORTS_SENTINEL:
        return ZERO_DURATION
    if _ISO_DURATION_RE.match(text):
        return text
    if _CLOCK_RE.match(text):
        parts = [int(p) for p in text.split(":")]
        while len(parts) < 3:
            parts.insert(0, 0)
        hours, minutes, seconds = parts
        return seconds_to_iso(hours * 3600 + minutes * 60 + seconds)
    return ""


# =============================================================================
# Dates
# =============================================================================

# unit word -> canonical unit
UNIT_WORDS = {
    "second": "seconds",
    "sec": "seconds",
    "minute": "minutes",
    "min": "minutes",
    "hour": "hours",
    "hr": "hours",
    "day": "days",
    "week": "weeks",
    "month": "months",
    "year": "years",
    "초": "seconds",
    "분": "minutes",
    "시간": "hours",
    "일": "days",
    "주": "weeks",
    "개월": "months",
    "달": "months",
    "년": "years",
}

_ENGLISH_RELATIVE_RE = re.compile(
    r"(\d+)\s*(seconds?|secs?|minutes?|mins?|hours?|hrs?|days?|weeks?|months?|years?)\b(?:\s+ago)?",
    re.IGNORECASE,
)
_KOREAN_RELATIVE_RE = re.compile(r"(\d+)\s*(시간|개월|초|분|일|주|달|년)(?:\s*전)?")


def _format_utc(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware datetime; ``None`` if invalid.

    Naive timestamps are taken as UTC.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _subtract_months(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    if year < 1:
        return moment.replace(year=1, month=1, day=1)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _unit_for(word: str) -> Optional[str]:
    word = word.lower()
    if word in UNIT_WORDS:
        return UNIT_WORDS[word]
    if word.endswith("s") and word[:-1] in UNIT_WORDS:
        return UNIT_WORDS[word[:-1]]
    return None


def parse_relative_time(text: Any, now: Optional[datetime] = None) -> Optional[datetime]:
    """Resolve "3 days ago" / "3일 전" against ``now``; ``None`` if no match."""
    if not isinstance(text, str) or not text.strip():
        return None

    match = _ENGLISH_RELATIVE_RE.search(text) or _KOREAN_RELATIVE_RE.search(text)
    if not match:
        return None

    amount = int(match.group(1))
    unit = _unit_for(match.group(2))
    if unit is None:
        return None

    now = now or datetime.now(timezone.utc)
    try:
        if unit == "months":
            return _subtract_months(now, amount)
        if unit == "years":
            return _subtract_months(now, amount * 12)
        return now - timedelta(**{unit: amount})
    except OverflowError:
        return None


def normalize_published_at(
    relative: Any,
    absolute: Any,
    now: Optional[datetime] = None,
) -> str:
    """Publish time as UTC ISO-8601; an absolute timestamp wins over relative text.

    Returns ``""`` when neither form can be parsed.
    """
    parsed = parse_timestamp(absolute)
    if parsed is not None:
        return _format_utc(parsed)

    resolved = parse_relative_time(relative, now)
    if resolved is not None:
        return _format_utc(resolved)
    return ""


# =============================================================================
# Thumbnails and kinds
# =============================================================================

THUMBNAIL_ARRAY_FIELDS = ("thumbnail", "thumbnails", "richThumbnail", "avatar")
THUMBNAIL_STRING_FIELDS = ("thumbnail", "image", "imgUrl", "poster", "thumb")


def last_image_url(images: list[Any]) -> str:
    """URL of the last (largest) image descriptor that has one."""
    for item in reversed(images):
        url = FieldExtractor(item).get_string("url")
        if url:
            return url
    return ""


def extract_thumbnail(raw: Any) -> str:
    """Highest-resolution thumbnail URL, or ``""``."""
    extractor = FieldExtractor(raw)

    for field in THUMBNAIL_ARRAY_FIELDS:
        images = extractor.get_array(field)
        if images:
            url = last_image_url(images)
            if url:
                return url

    return extractor.get_string(*THUMBNAIL_STRING_FIELDS)


SHORT_TAGS = {"short", "shorts", "reel"}
CHANNEL_TAGS = {"channel"}
VIDEO_TAGS = {"video"}


def detect_kind(raw: Any) -> VideoKind:
    """Classify a search item.

    Precedence: explicit type tag, then an isShorts-style flag, then the
    SHORTS duration sentinel, then long-form video.
    """
    extractor = FieldExtractor(raw)

    tag = extractor.get_string("type", "kind").lower()
    if tag in SHORT_TAGS:
        return VideoKind.SHORT
    if tag in CHANNEL_TAGS:
        return VideoKind.CHANNEL
    if tag in VIDEO_TAGS:
        return VideoKind.VIDEO

    flag = extractor.get_optional_bool("isShorts", "isShort", "is_short")
    if flag is not None:
        return VideoKind.SHORT if flag else VideoKind.VIDEO

    if extractor.get_string("lengthText", "duration").upper() == SHORTS_SENTINEL:
        return VideoKind.SHORT

    return VideoKind.VIDEO


# =============================================================================
# Hashtags
# =============================================================================

_HASHTAG_RE = re.compile(r"#[\w-]+")
MAX_HASHTAGS = 10


def extract_hashtags(text: Any) -> list[str]:
    """Unique hashtags (case-insensitive) in order of appearance, at most 10."""
    if not isinstance(text, str) or not text:
        return []
    seen: dict[str, str] = {}
    for tag in _HASHTAG_RE.findall(text):
        seen.setdefault(tag.lower(), tag)
    return list(seen.values())[:MAX_HASHTAGS]


def strip_hashtags(text: str) -> str:
    """Remove hashtags from display text."""
    if not text:
        return text
    return re.sub(r"\s{2,}", " ", _HASHTAG_RE.sub("", text)).strip()
