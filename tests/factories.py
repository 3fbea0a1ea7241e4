"""
Shared test data builders.
"""
import json
from pathlib import Path
from typing import Any, Dict


def sample_definition(pages: int = 1) -> Dict[str, Any]:
    """A minimal, valid survey definition with the given number of pages."""
    return {
        "title": "Client Intake",
        "description": "Collects basic client details",
        "showProgressBar": "top",
        "progressBarType": "buttons",
        "completeText": "Submit Form",
        "pages": [
            {
                "name": f"page{i + 1}",
                "elements": [
                    {"type": "text", "name": "name", "title": "Full name", "isRequired": True},
                    {"type": "dropdown", "name": "plan", "choices": ["Basic", "Pro"]},
                ],
            }
            for i in range(pages)
        ],
    }


def write_form_file(forms_dir: Path, form_id: str, **fields: Any) -> Path:
    """Write a raw form document the way an older release might have left it."""
    forms_dir.mkdir(parents=True, exist_ok=True)
    document = {
        "id": form_id,
        "name": fields.pop("name", form_id.replace("-", " ").title()),
        "formDefinition": fields.pop("formDefinition", sample_definition()),
        "createdAt": fields.pop("createdAt", "2024-01-01T00:00:00.000Z"),
    }
    document.update(fields)
    path = forms_dir / f"{form_id}.json"
    path.write_text(json.dumps(document), encoding="utf-8")
    return path
