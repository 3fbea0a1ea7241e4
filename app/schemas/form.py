from typing import Any, Dict, List, Optional
from pydantic import Field, field_validator
from app.core.slugs import is_valid_slug
from app.models.base import CamelModel
from app.external.webhook_client import WebhookValidationError, validate_webhook_url
from app.models.form import FormConfig, FormStatus


def validate_form_definition(definition: Any) -> List[Dict[str, str]]:
    """
    Check the top-level shape of a survey definition.

    Only the skeleton is checked: a title, a non-empty `pages` list, every
    page with a name and a non-empty `elements` list, every element with a
    type and a name. Question variants are not inspected.

    Returns:
        List of `{field, message}` errors; empty when the definition is usable
    """
    if not isinstance(definition, dict):
        return [{"field": "formDefinition", "message": "must be an object"}]

    errors = []
    if not definition.get("title"):
        errors.append({"field": "formDefinition.title", "message": "is required"})

    pages = definition.get("pages")
    if not isinstance(pages, list) or not pages:
        errors.append({"field": "formDefinition.pages", "message": "must be a non-empty list"})
        return errors

    for i, page in enumerate(pages):
        prefix = f"formDefinition.pages[{i}]"
        if not isinstance(page, dict):
            errors.append({"field": prefix, "message": "must be an object"})
            continue
        if not page.get("name"):
            errors.append({"field": f"{prefix}.name", "message": "is required"})
        elements = page.get("elements")
        if not isinstance(elements, list) or not elements:
            errors.append({"field": f"{prefix}.elements", "message": "must be a non-empty list"})
            continue
        for j, element in enumerate(elements):
            element_prefix = f"{prefix}.elements[{j}]"
            if not isinstance(element, dict):
                errors.append({"field": element_prefix, "message": "must be an object"})
                continue
            for key in ("type", "name"):
                if not element.get(key):
                    errors.append({"field": f"{element_prefix}.{key}", "message": "is required"})

    return errors


def parse_webhook_url(value: Optional[str]) -> Optional[str]:
    """Blank means no webhook; anything else must be a public http(s) URL."""
    if value is None or not value.strip():
        return None
    try:
        return validate_webhook_url(value.strip())
    except WebhookValidationError as e:
        raise ValueError(str(e))


class FormUpdateRequest(CamelModel):
    """
    Partial update of a form. Only keys present in the request body are
    applied; `title` is accepted as an alias of `name`.
    """
    name: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    url_slug: Optional[str] = None
    webhook_url: Optional[str] = None
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None
    status: Optional[FormStatus] = None
    form_definition: Optional[Dict[str, Any]] = None
    complete_text: Optional[str] = None

    @field_validator("url_slug")
    @classmethod
    def check_slug(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_slug(value):
            raise ValueError("URL slug may only contain lowercase letters, digits and hyphens")
        return value

    @field_validator("webhook_url")
    @classmethod
    def check_webhook_url(cls, value: Optional[str]) -> Optional[str]:
        return parse_webhook_url(value)


class FormGenerateRequest(CamelModel):
    """Request schema for generating a new form from a prompt."""
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    webhook_url: Optional[str] = None

    @field_validator("webhook_url")
    @classmethod
    def check_webhook_url(cls, value: Optional[str]) -> Optional[str]:
        return parse_webhook_url(value)


class FormDetailResponse(CamelModel):
    """Response schema for a single form."""
    success: bool = True
    form_config: Dict[str, Any]
    form_definition: Dict[str, Any]

    @classmethod
    def from_config(cls, config: FormConfig) -> "FormDetailResponse":
        return cls(form_config=config.to_document(), form_definition=config.form_definition)


class FormListResponse(CamelModel):
    """Response schema for the form listing (each entry carries `submissionCount`)."""
    success: bool = True
    forms: List[Dict[str, Any]]


class FormUpdateResponse(CamelModel):
    """Response schema for update and archive actions."""
    success: bool = True
    message: str
    form_config: Dict[str, Any]


class FormGenerateResponse(CamelModel):
    """Response schema for form generation."""
    success: bool = True
    form_id: str
    form_name: str
    form_definition: Dict[str, Any]
    message: str = "Form generated successfully"
    config: Dict[str, Any]


class FormMigrateResponse(CamelModel):
    """Response schema for form migration."""
    success: bool = True
    action: str
    form_id: str
