"""Public-facing routes (always mounted)."""

from fastapi import APIRouter

router = APIRouter(tags=["public"])


@router.get("/health")
def health() -> dict:
    """Liveness check. Does not touch the database."""
    return {"status": "ok"}
