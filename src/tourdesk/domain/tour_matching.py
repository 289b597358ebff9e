"""Tour matching: normalize extracted vocabulary and pick a tour preset.

Deterministic, no LLM. Normalization is an ordered rule table per field:
case-insensitive substring tests, first match wins, the original value is
passed through when no rule matches, and "N/A"/empty means "absent".

Selection walks MATCH_TIERS against the active catalog (see
tour_presets_repository.find_best_match). TourMatcher never
returns None: when the catalog is empty or the store fails, the caller gets
FALLBACK_PRESET.
"""

from typing import Sequence

from tourdesk.domain.contracts import TourPresetStore
from tourdesk.domain.models import NOT_AVAILABLE, TourPreset
from tourdesk.observability.logging import get_logger
from tourdesk.observability.redaction import safe_log_context

logger = get_logger(__name__)

# (substring patterns, canonical value), evaluated top to bottom
Rule = tuple[tuple[str, ...], str]

TOUR_TYPE_RULES: tuple[Rule, ...] = (
    (("walk",), "Walking Tour"),
    (("food", "eat", "culinary"), "Food Tour"),
    (("histor",), "Historical Tour"),
    (("art", "museum"), "Art Tour"),
    (("photo",), "Photography Tour"),
    (("night",), "Night Tour"),
    (("bike", "cycling"), "Bike Tour"),
)

DATE_RULES: tuple[Rule, ...] = (
    (("today",), "today"),
    (("tomorrow",), "tomorrow"),
    (("weekend",), "weekend"),
    (("monday",), "Monday"),
    (("tuesday",), "Tuesday"),
    (("wednesday",), "Wednesday"),
    (("thursday",), "Thursday"),
    (("friday",), "Friday"),
    (("saturday",), "Saturday"),
    (("sunday",), "Sunday"),
)

# Numeric hints overlap between buckets ("9" is morning before it is night).
# "afternoon" contains "noon", so it is tested ahead of the lunch bucket.
TIME_RULES: tuple[Rule, ...] = (
    (("afternoon",), "2 PM"),
    (("morning", "9", "10"), "9 AM"),
    (("lunch", "noon", "12"), "12 PM"),
    (("afternoon", "1", "2"), "2 PM"),
    (("evening", "6", "7"), "6 PM"),
    (("night", "8", "9"), "8 PM"),
)

# Preset attributes compared per tier; the empty tier accepts any active preset.
MATCH_TIERS: tuple[tuple[str, ...], ...] = (
    ("tour_type", "date", "time_slot"),
    ("tour_type",),
    (),
)

FALLBACK_PRESET = TourPreset(
    id=0,
    tour_type="General Tour",
    date="tomorrow",
    time_slot="9 AM",
    guide_name="our friendly team",
    guide_phone="Please contact our main office",
    meeting_location="your hotel lobby",
    identifiable_object="a small sign with our company logo",
    is_active=True,
    description="We'll arrange a wonderful tour experience for you!",
)


def _is_absent(value: str | None) -> bool:
    return value is None or not value.strip() or value.strip().upper() == NOT_AVAILABLE


def apply_rules(value: str | None, rules: Sequence[Rule]) -> str | None:
    """Map value onto a canonical token using an ordered rule table."""
    if _is_absent(value):
        return None

    lowered = value.strip().lower()
    for patterns, canonical in rules:
        if any(pattern in lowered for pattern in patterns):
            return canonical
    return value


def normalize_tour_type(value: str | None) -> str | None:
    return apply_rules(value, TOUR_TYPE_RULES)


def normalize_date(value: str | None) -> str | None:
    return apply_rules(value, DATE_RULES)


def normalize_time(value: str | None) -> str | None:
    return apply_rules(value, TIME_RULES)


def applicable_tiers(criteria: dict[str, str | None]) -> list[tuple[str, ...]]:
    """Tiers whose every criterion is present, in priority order."""
    return [
        tier
        for tier in MATCH_TIERS
        if all(not _is_absent(criteria.get(attr)) for attr in tier)
    ]


class TourMatcher:
    """Selects the tour preset used for the confirmation reply."""

    def __init__(self, store: TourPresetStore) -> None:
        self._store = store

    async def find_best_match(
        self,
        tour_type: str | None,
        tour_date: str | None,
        tour_time: str | None,
    ) -> TourPreset:
        """Normalize the extracted fields and return the best preset.

        Never returns None and never raises.
        """
        try:
            normalized_type = normalize_tour_type(tour_type)
            normalized_date = normalize_date(tour_date)
            normalized_time = normalize_time(tour_time)

            logger.info(
                "tour match criteria normalized",
                extra={
                    "extra_fields": safe_log_context(
                        tour_type=normalized_type,
                        tour_date=normalized_date,
                        tour_time=normalized_time,
                    )
                },
            )

            preset = await self._store.find_best_match(
                normalized_type, normalized_date, normalized_time
            )
        except Exception:
            logger.exception("tour preset lookup failed, using fallback preset")
            return FALLBACK_PRESET

        if preset is None:
            logger.warning("no active tour preset matched, using fallback preset")
            return FALLBACK_PRESET

        logger.info(
            "tour preset matched",
            extra={
                "extra_fields": safe_log_context(
                    preset_id=preset.id,
                    tour_type=preset.tour_type,
                )
            },
        )
        return preset
