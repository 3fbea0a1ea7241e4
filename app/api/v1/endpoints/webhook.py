import logging
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from app.api.deps import RequestContext, get_request_context, get_webhook_dispatcher, require_admin
from app.core.logging_utils import sanitize_log_message
from app.external.webhook_client import WebhookDispatcher
from app.schemas.webhook import WebhookTestRequest, WebhookTestResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/test", response_model=WebhookTestResponse, dependencies=[Depends(require_admin)])
async def test_webhook(
    request: WebhookTestRequest,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
    context: RequestContext = Depends(get_request_context)
):
    """
    Send a test payload to a webhook URL and report what happened.
    """
    result = await dispatcher.test(request.webhook_url, request.test_data)

    if not result.success:
        logger.warning(sanitize_log_message(
            "Webhook test failed",
            StatusCode=result.status_code,
            Error=result.error,
            RequestID=context.request_id
        ))
        content = {"success": False, "error": result.error}
        if result.status_code is not None:
            content["status"] = result.status_code
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)

    return WebhookTestResponse(status=result.status_code)
