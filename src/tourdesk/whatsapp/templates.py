"""WhatsApp reply templates.

Templates hold static text with named placeholders. Text is rendered
in-memory at send time; the full rendered reply is kept only in the audit log.
"""

from typing import Any

from tourdesk.domain.models import TourPreset
from tourdesk.observability.logging import get_logger

logger = get_logger(__name__)

TOUR_CONFIRMATION = "TourConfirmation"

DEFAULT_DESCRIPTION = "We're excited to share our city with you!"

TEMPLATES: dict[str, dict[str, Any]] = {
    TOUR_CONFIRMATION: {
        "text": (
            "Hello! Thank you for booking your tour with {company_name}. \n\n"
            "Your tour guide {guide_name} will meet you at {meeting_location} "
            "at {time_slot}. Look for {identifiable_object}.\n\n"
            "If you need to reach your guide directly, you can contact them at: "
            "{guide_phone}\n\n"
            "{description}\n\n"
            "We look forward to showing you an amazing time! If you have any "
            "questions before your tour, feel free to reach out.\n\n"
            "PS - We have many more tours available! Ask us about our other "
            "offerings including food tours, historical walks, and specialty "
            "experiences.\n\n"
            "Have a wonderful day!\n"
            "{company_name} Team"
        ),
        "allowed_params": [
            "company_name",
            "guide_name",
            "meeting_location",
            "time_slot",
            "identifiable_object",
            "guide_phone",
            "description",
        ],
    },
    "generic_ack": {
        "text": (
            "Hello! Thank you for contacting {company_name}. We've received "
            "your message and will get back to you shortly with tour information."
        ),
        "allowed_params": ["company_name"],
    },
}


def render(template_key: str, params: dict[str, Any]) -> str:
    """Render template with params. Validates allowed_params.

    Raises:
        ValueError: If template_key unknown or params contains disallowed keys.
        KeyError: If a placeholder has no param.
    """
    if template_key not in TEMPLATES:
        raise ValueError(f"Unknown template: {template_key}")

    template = TEMPLATES[template_key]
    extras = set(params.keys()) - set(template["allowed_params"])
    if extras:
        raise ValueError(f"Disallowed params for {template_key}: {extras}")

    return template["text"].format(**params)


def compose_tour_response(preset: TourPreset, company_name: str) -> str:
    """Fill the tour confirmation for a matched preset.

    Never raises; on a rendering error returns the short booking fallback.
    """
    try:
        return render(
            TOUR_CONFIRMATION,
            {
                "company_name": company_name,
                "guide_name": preset.guide_name,
                "meeting_location": preset.meeting_location,
                "time_slot": preset.time_slot,
                "identifiable_object": preset.identifiable_object,
                "guide_phone": preset.guide_phone,
                "description": preset.description or DEFAULT_DESCRIPTION,
            },
        )
    except Exception:
        logger.exception("tour confirmation rendering failed")
        return f"Thank you for booking with {company_name}! We'll send you tour details shortly."


def compose_generic_response(company_name: str) -> str:
    """Acknowledgement used when no preset is available."""
    return render("generic_ack", {"company_name": company_name})
