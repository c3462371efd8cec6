"""Mission templates offered when starting a session."""

from typing import Any, Dict, List, Mapping

MISSION_TYPES = ("schedule_meeting", "accept_offer", "interview_report", "custom")

MISSION_TEMPLATES: List[Dict[str, Any]] = [
    {
        "type": "schedule_meeting",
        "title": "Schedule Meeting",
        "description": "Book calls, appointments, or interviews with availability management",
        "fields": [
            {"key": "meeting_title", "label": "Meeting Title", "placeholder": "e.g., Q1 Roadmap Discussion"},
            {"key": "with_person", "label": "With", "placeholder": "e.g., Sarah from Marketing"},
            {"key": "duration", "label": "Duration", "placeholder": "e.g., 30 minutes"},
            {"key": "format", "label": "Format", "placeholder": "e.g., Video call, In-person"},
        ],
    },
    {
        "type": "accept_offer",
        "title": "Accept Offer",
        "description": "Close deals, confirm proposals, or get sign-offs from stakeholders",
        "fields": [
            {"key": "offer_title", "label": "Offer Title", "placeholder": "e.g., Enterprise Plan Proposal"},
            {"key": "details", "label": "Key Details", "placeholder": "e.g., $5,000/month, 12-month commitment"},
            {"key": "deadline", "label": "Response Deadline", "placeholder": "e.g., End of week"},
        ],
    },
    {
        "type": "interview_report",
        "title": "Interview Report",
        "description": "Collect structured feedback, assessments, or survey responses",
        "fields": [
            {"key": "candidate_name", "label": "Candidate/Subject", "placeholder": "e.g., John Smith"},
            {"key": "position", "label": "Position/Topic", "placeholder": "e.g., Senior Developer Role"},
            {"key": "criteria", "label": "Evaluation Criteria", "placeholder": "e.g., Technical skills, Communication"},
        ],
    },
    {
        "type": "custom",
        "title": "Custom Mission",
        "description": "Define your own goal and parameters for complete flexibility",
        "fields": [
            {"key": "goal", "label": "Mission Goal", "placeholder": "e.g., Collect feedback on new product feature"},
            {"key": "success_criteria", "label": "Success Criteria", "placeholder": "e.g., Get rating and 3 suggestions"},
        ],
    },
]

DEFAULT_OPTIONS = ["Continue", "Tell me more", "Let's start"]
SUGGESTED_OPTIONS = {
    "schedule_meeting": ["Monday", "Tuesday", "Wednesday", "Any day works"],
}


def get_template(mission_type: str) -> Dict[str, Any]:
    for template in MISSION_TEMPLATES:
        if template["type"] == mission_type:
            return template
    raise ValueError(f"Unknown mission type: {mission_type}")


def suggested_options(mission_type: str) -> List[str]:
    """Quick replies shown under each assistant message."""
    return list(SUGGESTED_OPTIONS.get(mission_type, DEFAULT_OPTIONS))


def build_mission(mission_type: str, title: str, form: Mapping[str, Any]) -> Dict[str, Any]:
    """Turn a filled-in template form into a mission document.

    Only the template's own field keys are kept; blank values are dropped.
    """
    template = get_template(mission_type)
    if not title or not title.strip():
        raise ValueError("Mission title is required")
    keys = [f["key"] for f in template["fields"]]
    details = {k: form[k] for k in keys if form.get(k)}
    return {
        "mission_type": mission_type,
        "mission_title": title.strip(),
        "initial_details": details,
        "generated_by": "human",
    }
