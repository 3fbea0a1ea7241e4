import logging
from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, status
from pydantic import ValidationError
from app.api.deps import (
    RequestContext,
    get_form_store,
    get_generator_client,
    get_lifecycle_service,
    get_request_context,
    get_settings,
    get_submission_recorder,
    require_admin,
)
from app.config import Settings
from app.core.exceptions import FormValidationException
from app.core.logging_utils import sanitize_log_message
from app.external.generator_client import GENERATED_BY, SchemaGeneratorClient
from app.external.webhook_client import WebhookValidationError, validate_webhook_url
from app.models.form import FormConfig, FormStatus
from app.schemas.form import (
    FormDetailResponse,
    FormGenerateRequest,
    FormGenerateResponse,
    FormListResponse,
    FormMigrateResponse,
    FormUpdateRequest,
    FormUpdateResponse,
)
from app.services.form_store import FormConfigStore
from app.services.lifecycle_service import FormLifecycleService
from app.services.submission_service import SubmissionRecorder

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_https_webhook(webhook_url: Optional[str], settings: Settings) -> None:
    """Production forms may only notify HTTPS endpoints."""
    if not webhook_url or not settings.is_production:
        return
    try:
        validate_webhook_url(webhook_url, require_https=True)
    except WebhookValidationError as e:
        raise FormValidationException(errors=[{"field": "webhookUrl", "message": str(e)}])


@router.get("", response_model=FormListResponse, dependencies=[Depends(require_admin)])
async def list_forms(
    store: FormConfigStore = Depends(get_form_store),
    recorder: SubmissionRecorder = Depends(get_submission_recorder)
):
    """
    List every form, newest first, with its submission count.
    """
    forms = sorted(await store.list_forms(), key=lambda form: form.created_at, reverse=True)

    items = []
    for form in forms:
        item = form.to_document()
        item["submissionCount"] = await recorder.count_submissions(form.id)
        items.append(item)

    return FormListResponse(forms=items)


@router.get("/slug/{slug}", response_model=FormDetailResponse)
async def get_form_by_slug(
    slug: str,
    store: FormConfigStore = Depends(get_form_store)
):
    """
    Public lookup used by the form renderer.
    Only public, non-archived forms are served.
    """
    form = await store.get_form_by_slug(slug)
    return FormDetailResponse.from_config(form)


@router.post(
    "/generate",
    response_model=FormGenerateResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)]
)
async def generate_form(
    request: FormGenerateRequest,
    generator: SchemaGeneratorClient = Depends(get_generator_client),
    lifecycle: FormLifecycleService = Depends(get_lifecycle_service),
    settings: Settings = Depends(get_settings),
    context: RequestContext = Depends(get_request_context)
):
    """
    Draft a form definition with the schema generator and store it as a new
    Internal form.
    """
    _require_https_webhook(request.webhook_url, settings)

    logger.info(sanitize_log_message(
        "Generating form",
        FormName=request.name,
        RequestID=context.request_id
    ))

    definition = await generator.generate(request.name, request.description)
    form = await lifecycle.create_form(
        name=request.name,
        description=definition.get("description") or request.description,
        form_definition=definition,
        webhook_url=request.webhook_url,
        generated_by=GENERATED_BY
    )

    return FormGenerateResponse(
        form_id=form.id,
        form_name=form.name,
        form_definition=form.form_definition,
        config=form.to_document()
    )


@router.post("/migrate", response_model=FormMigrateResponse, dependencies=[Depends(require_admin)])
async def migrate_form(
    payload: Dict[str, Any] = Body(...),
    lifecycle: FormLifecycleService = Depends(get_lifecycle_service),
    context: RequestContext = Depends(get_request_context)
):
    """
    Create or replace a form from a complete configuration document.
    Used to push local form files to another deployment.
    """
    try:
        config = FormConfig.model_validate(payload)
    except ValidationError as e:
        raise FormValidationException(
            detail="Invalid form configuration",
            errors=[
                {"field": ".".join(str(part) for part in err["loc"]) or "body", "message": err["msg"]}
                for err in e.errors()
            ]
        )

    form, action = await lifecycle.import_form(config)
    logger.info(sanitize_log_message(
        "Form migrated",
        FormID=form.id,
        Action=action,
        RequestID=context.request_id
    ))
    return FormMigrateResponse(action=action, form_id=form.id)


@router.get("/{form_id}", response_model=FormDetailResponse, dependencies=[Depends(require_admin)])
async def get_form(
    form_id: str,
    store: FormConfigStore = Depends(get_form_store)
):
    form = await store.get_form(form_id)
    return FormDetailResponse.from_config(form)


@router.get("/{form_id}/definition", response_model=FormDetailResponse, dependencies=[Depends(require_admin)])
async def get_form_definition(
    form_id: str,
    store: FormConfigStore = Depends(get_form_store)
):
    form = await store.get_form(form_id)
    return FormDetailResponse.from_config(form)


@router.patch("/{form_id}", response_model=FormUpdateResponse, dependencies=[Depends(require_admin)])
async def update_form(
    form_id: str,
    request: FormUpdateRequest,
    lifecycle: FormLifecycleService = Depends(get_lifecycle_service),
    settings: Settings = Depends(get_settings),
    context: RequestContext = Depends(get_request_context)
):
    """
    Partially update a form. Only the fields present in the body change.
    """
    _require_https_webhook(request.webhook_url, settings)
    form = await lifecycle.update_form(form_id, request)
    logger.info(sanitize_log_message(
        "Form update request completed",
        FormID=form.id,
        RequestID=context.request_id
    ))
    return FormUpdateResponse(message="Form updated successfully", form_config=form.to_document())


@router.post("/{form_id}/archive", response_model=FormUpdateResponse, dependencies=[Depends(require_admin)])
async def toggle_archive(
    form_id: str,
    lifecycle: FormLifecycleService = Depends(get_lifecycle_service)
):
    """
    Archive a form, or restore an archived form to Internal.
    """
    form = await lifecycle.toggle_archive(form_id)
    message = "Form archived successfully" if form.status == FormStatus.ARCHIVED else "Form restored successfully"
    return FormUpdateResponse(message=message, form_config=form.to_document())
