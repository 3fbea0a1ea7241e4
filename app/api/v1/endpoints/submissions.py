import json
import logging
from typing import Any, Dict, List, Tuple
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import FileResponse
from starlette.datastructures import UploadFile
from app.api.deps import (
    RequestContext,
    get_form_store,
    get_request_context,
    get_submission_recorder,
    get_webhook_dispatcher,
    require_admin,
)
from app.core.exceptions import FileUploadException, FormNotPublicException, FormValidationException
from app.core.logging_utils import sanitize_log_message
from app.external.webhook_client import WebhookDispatcher
from app.models.form import FormConfig, FormStatus
from app.models.submission import UploadedFile
from app.schemas.submission import SubmissionSummaryResponse, SubmitResponse
from app.services.form_store import FormConfigStore
from app.services.submission_service import SubmissionRecorder

logger = logging.getLogger(__name__)

router = APIRouter()

# Body keys the renderer may send along with the answers; never recorded
RESERVED_FIELDS = {"formDefinition", "webhookUrl", "formId"}


async def _read_json_fields(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise FormValidationException(
            detail="Invalid submission body",
            errors=[{"field": "body", "message": "must be valid JSON"}]
        )
    if not isinstance(body, dict):
        raise FormValidationException(
            detail="Invalid submission body",
            errors=[{"field": "body", "message": "must be a JSON object"}]
        )
    return {key: value for key, value in body.items() if key not in RESERVED_FIELDS}


async def _read_multipart_fields(
    request: Request,
    form_config: FormConfig,
    recorder: SubmissionRecorder
) -> Tuple[Dict[str, Any], int]:
    fields: Dict[str, Any] = {}
    stored: List[UploadedFile] = []

    async with request.form() as form:
        for key, value in form.multi_items():
            if key in RESERVED_FIELDS:
                continue
            if isinstance(value, UploadFile):
                if not value.filename:
                    continue
                try:
                    upload = await recorder.store_upload(form_config.id, key, value)
                except FileUploadException:
                    await recorder.discard_uploads(form_config.id, stored)
                    raise
                stored.append(upload)
                value = upload.model_dump(by_alias=True)

            if key in fields:
                existing = fields[key]
                fields[key] = existing + [value] if isinstance(existing, list) else [existing, value]
            else:
                fields[key] = value

    return fields, len(stored)


@router.post("/{form_id}/submit", response_model=SubmitResponse)
async def submit_form(
    form_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    store: FormConfigStore = Depends(get_form_store),
    recorder: SubmissionRecorder = Depends(get_submission_recorder),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
    context: RequestContext = Depends(get_request_context)
):
    """
    Record a submission (JSON or multipart with files).

    The webhook, if the form has one, is notified in the background after
    the response is sent. Storage problems are logged, not returned.
    """
    form_config = await store.get_form(form_id)
    if form_config.status == FormStatus.ARCHIVED:
        raise FormNotPublicException(detail="Form is archived and no longer accepts submissions")

    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data") or content_type.startswith("application/x-www-form-urlencoded"):
        fields, files_uploaded = await _read_multipart_fields(request, form_config, recorder)
    else:
        fields, files_uploaded = await _read_json_fields(request), 0

    result = await recorder.record(form_config, fields)
    result.files_uploaded = files_uploaded

    if form_config.webhook_url:
        background_tasks.add_task(
            dispatcher.send,
            form_config.webhook_url,
            form_config.id,
            result.submission_id,
            result.submitted_at,
            fields
        )

    logger.info(sanitize_log_message(
        "Submission received",
        FormID=form_config.id,
        SubmissionID=result.submission_id,
        Recorded=result.recorded,
        FilesUploaded=files_uploaded,
        Webhook=bool(form_config.webhook_url),
        RequestID=context.request_id
    ))

    return SubmitResponse(submission_id=result.submission_id, files_uploaded=files_uploaded)


@router.get(
    "/{form_id}/submissions",
    response_model=SubmissionSummaryResponse,
    dependencies=[Depends(require_admin)]
)
async def get_submission_summary(
    form_id: str,
    store: FormConfigStore = Depends(get_form_store),
    recorder: SubmissionRecorder = Depends(get_submission_recorder)
):
    """
    Number of submissions and the latest one.
    """
    await store.get_form(form_id)
    summary = await recorder.summarize(form_id)
    return SubmissionSummaryResponse(
        total_submissions=summary["totalSubmissions"],
        last_submission=summary["lastSubmission"]
    )


@router.get("/{form_id}/submissions/csv", dependencies=[Depends(require_admin)])
async def download_submissions_csv(
    form_id: str,
    store: FormConfigStore = Depends(get_form_store),
    recorder: SubmissionRecorder = Depends(get_submission_recorder)
):
    await store.get_form(form_id)
    csv_file = await recorder.csv_path(form_id)
    return FileResponse(
        path=csv_file,
        media_type="text/csv",
        filename=f"{form_id}-responses.csv"
    )
