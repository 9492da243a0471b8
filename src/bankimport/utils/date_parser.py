"""Date parsing utilities.

Bank exports use a handful of numeric date layouts. Each layout is a
``DateFormatSpec`` in a fixed catalog; detection scores every layout over a
sample of cells and parsing tries layouts by descending prior confidence.
Dates outside a plausibility window (ten years back, one year ahead) are
rejected so that misparses such as a swapped day and month are not accepted.
"""

from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional
import re

from dateutil.relativedelta import relativedelta

DEFAULT_DATE_FORMAT = "DD/MM/YYYY"
DEFAULT_DATE_CONFIDENCE = 0.5
PLAUSIBLE_YEARS_BACK = 10
PLAUSIBLE_YEARS_AHEAD = 1
TWO_DIGIT_YEAR_PIVOT = 50

DATE_LIKE = re.compile(r"^[\d/\-\s.]+$")
TIME_SUFFIX = re.compile(r"[ T]\d{1,2}:\d{2}(:\d{2}(\.\d+)?)?$")


def _full_year(year: int) -> int:
    return 1900 + year if year > TWO_DIGIT_YEAR_PIVOT else 2000 + year


def _dmy(match: re.Match) -> date:
    return date(int(match.group(3)), int(match.group(2)), int(match.group(1)))


def _dmy_short(match: re.Match) -> date:
    return date(_full_year(int(match.group(3))), int(match.group(2)), int(match.group(1)))


def _ymd(match: re.Match) -> date:
    return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))


def _mdy(match: re.Match) -> date:
    return date(int(match.group(3)), int(match.group(1)), int(match.group(2)))


@dataclass(frozen=True)
class DateFormatSpec:
    """A named date layout with its regex, builder and prior confidence."""

    pattern: str
    regex: re.Pattern
    build: Callable[[re.Match], date]
    confidence: float


@dataclass(frozen=True)
class DateParseResult:
    """A parsed date with the layout that produced it."""

    date: date
    format: str
    confidence: float
    original_text: str


@dataclass(frozen=True)
class DateFormatDetection:
    """Best layout for a column of date samples."""

    format: str
    confidence: float


DATE_FORMATS: tuple[DateFormatSpec, ...] = (
    DateFormatSpec("DD/MM/YYYY", re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), _dmy, 0.9),
    DateFormatSpec("DD-MM-YYYY", re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), _dmy, 0.9),
    DateFormatSpec("DD/MM/YY", re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$"), _dmy_short, 0.8),
    DateFormatSpec("DD-MM-YY", re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{2})$"), _dmy_short, 0.8),
    DateFormatSpec("YYYY-MM-DD", re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), _ymd, 0.95),
    DateFormatSpec("YYYY/MM/DD", re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), _ymd, 0.85),
    # US layout, low prior for Spanish bank exports
    DateFormatSpec("MM/DD/YYYY", re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), _mdy, 0.6),
    DateFormatSpec("DDMMYYYY", re.compile(r"^(\d{2})(\d{2})(\d{4})$"), _dmy, 0.7),
    DateFormatSpec("YYYYMMDD", re.compile(r"^(\d{4})(\d{2})(\d{2})$"), _ymd, 0.85),
)

FORMATS_BY_CONFIDENCE = tuple(sorted(DATE_FORMATS, key=lambda spec: spec.confidence, reverse=True))
FORMATS_BY_NAME = {spec.pattern: spec for spec in DATE_FORMATS}


def supported_formats() -> list[str]:
    """Return the catalog's pattern names."""
    return [spec.pattern for spec in DATE_FORMATS]


def clean_date_string(value: str) -> str:
    """Strip time suffixes and spaces, and turn dots into slashes."""
    text = str(value).strip()
    text = TIME_SUFFIX.sub("", text)
    return re.sub(r"\s+", "", text).replace(".", "/")


def is_date_like(value: str) -> bool:
    """Check whether a string is made of digits and date separators."""
    text = str(value).strip()
    return bool(DATE_LIKE.match(text)) and 6 <= len(text) <= 10 and any(ch.isdigit() for ch in text)


def is_plausible(value: date, today: Optional[date] = None) -> bool:
    """Check that a date falls inside the banking plausibility window."""
    today = today or date.today()
    earliest = today - relativedelta(years=PLAUSIBLE_YEARS_BACK)
    latest = today + relativedelta(years=PLAUSIBLE_YEARS_AHEAD)
    return earliest <= value <= latest


def _try_format(text: str, spec: DateFormatSpec) -> Optional[DateParseResult]:
    match = spec.regex.match(text)
    if not match:
        return None
    try:
        parsed = spec.build(match)
    except ValueError:
        return None
    return DateParseResult(date=parsed, format=spec.pattern, confidence=spec.confidence, original_text=text)


def parse_date(date_str: str, today: Optional[date] = None) -> Optional[DateParseResult]:
    """Parse a single date string trying every known layout.

    Args:
        date_str: Date string such as "15/03/2024", "2024-03-15" or "15.03.24"
        today: Reference day for the plausibility window (defaults to today)

    Returns:
        The first plausible parse in descending prior confidence, or None
    """
    if date_str is None:
        return None
    cleaned = clean_date_string(date_str)
    if not is_date_like(cleaned):
        return None

    for spec in FORMATS_BY_CONFIDENCE:
        result = _try_format(cleaned, spec)
        if result is not None and is_plausible(result.date, today):
            return result
    return None


def parse_date_with_format(date_str: str, pattern: str) -> Optional[DateParseResult]:
    """Parse a date string with one named layout, without the plausibility window."""
    spec = FORMATS_BY_NAME.get(pattern)
    if spec is None or date_str is None:
        return None
    return _try_format(clean_date_string(date_str), spec)


def detect_date_format(samples: list[str], today: Optional[date] = None) -> DateFormatDetection:
    """Detect the date layout used by a column.

    Every layout is scored as ``success_rate * average_confidence`` where a
    success is a regex match that yields a plausible date.

    Args:
        samples: Raw cell values from the date column
        today: Reference day for the plausibility window

    Returns:
        The best scoring layout, or DD/MM/YYYY at 0.5 when nothing parses
    """
    cleaned = [clean_date_string(sample) for sample in samples if sample is not None and str(sample).strip()]
    cleaned = [sample for sample in cleaned if is_date_like(sample)]
    if not cleaned:
        return DateFormatDetection(DEFAULT_DATE_FORMAT, DEFAULT_DATE_CONFIDENCE)

    best = DateFormatDetection(DEFAULT_DATE_FORMAT, DEFAULT_DATE_CONFIDENCE)
    best_score = 0.0
    for spec in DATE_FORMATS:
        successes = 0
        total_confidence = 0.0
        for sample in cleaned:
            result = _try_format(sample, spec)
            if result is not None and is_plausible(result.date, today):
                successes += 1
                total_confidence += result.confidence
        if successes == 0:
            continue
        average = total_confidence / successes
        score = (successes / len(cleaned)) * average
        if score > best_score:
            best_score = score
            best = DateFormatDetection(spec.pattern, average)
    return best
