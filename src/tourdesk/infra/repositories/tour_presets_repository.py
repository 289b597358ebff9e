"""Tour presets repository - read-only catalog access.

Uses raw SQL with psycopg2 (no ORM).

find_best_match issues one query per applicable tier from
tourdesk.domain.tour_matching.MATCH_TIERS: case-insensitive substring
(ILIKE) per criterion, active presets only, lowest id first.
"""

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from tourdesk.domain.models import TourPreset
from tourdesk.domain.tour_matching import applicable_tiers

_PRESET_COLUMNS = """
    id, tour_type, date, time_slot, guide_name, guide_phone,
    meeting_location, identifiable_object, is_active, max_capacity,
    price, description
"""

# Column names are fixed here; values are always bound parameters.
_TIER_COLUMNS = {"tour_type": "tour_type", "date": "date", "time_slot": "time_slot"}


def _row_to_preset(row: tuple[Any, ...]) -> TourPreset:
    return TourPreset(
        id=row[0],
        tour_type=row[1],
        date=row[2],
        time_slot=row[3],
        guide_name=row[4],
        guide_phone=row[5],
        meeting_location=row[6],
        identifiable_object=row[7],
        is_active=row[8],
        max_capacity=row[9],
        price=row[10],
        description=row[11],
    )


def like_pattern(value: str) -> str:
    """Substring pattern for ILIKE with %, _ and backslash escaped."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def find_best_match(
    cur: PgCursor,
    *,
    tour_type: str | None,
    date: str | None,
    time_slot: str | None,
) -> TourPreset | None:
    """Return the first active preset matching the highest applicable tier."""
    criteria = {"tour_type": tour_type, "date": date, "time_slot": time_slot}

    for tier in applicable_tiers(criteria):
        clauses = ["is_active"]
        params: list[str] = []
        for attr in tier:
            clauses.append(f"{_TIER_COLUMNS[attr]} ILIKE %s")
            params.append(like_pattern(criteria[attr].strip()))

        cur.execute(
            f"""
            SELECT {_PRESET_COLUMNS}
            FROM tour_presets
            WHERE {" AND ".join(clauses)}
            ORDER BY id
            LIMIT 1
            """,
            tuple(params),
        )
        row = cur.fetchone()
        if row:
            return _row_to_preset(row)

    return None


def list_active_presets(cur: PgCursor) -> list[TourPreset]:
    """All active presets ordered by type, date and time slot."""
    cur.execute(
        f"""
        SELECT {_PRESET_COLUMNS}
        FROM tour_presets
        WHERE is_active
        ORDER BY tour_type, date, time_slot
        """
    )
    return [_row_to_preset(row) for row in cur.fetchall()]


def get_preset(cur: PgCursor, preset_id: int) -> TourPreset | None:
    """Fetch one preset by id, active or not."""
    cur.execute(
        f"SELECT {_PRESET_COLUMNS} FROM tour_presets WHERE id = %s",
        (preset_id,),
    )
    row = cur.fetchone()
    return _row_to_preset(row) if row else None
