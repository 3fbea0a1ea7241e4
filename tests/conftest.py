import pytest
from datetime import timedelta
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Dict, Generator, List
import httpx
from app.config import Settings
from app.core.security import create_access_token
from app.external.webhook_client import WebhookDispatcher, build_webhook_client
from app.services.form_store import FormConfigStore
from app.services.lifecycle_service import FormLifecycleService
from app.services.submission_service import SubmissionRecorder
from factories import sample_definition

TEST_SECRET_KEY = "test-secret-key-that-is-at-least-32-characters"
TEST_ADMIN_PASSWORD = "correct-horse-battery"


@pytest.fixture(scope="function")
def settings(tmp_path: Path) -> Settings:
    """Settings isolated to a temporary data directory."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DATA_DIR=str(tmp_path / "data"),
        LOG_DIR=str(tmp_path / "logs"),
        SECRET_KEY=TEST_SECRET_KEY,
        ADMIN_USERNAME="admin",
        ADMIN_PASSWORD=TEST_ADMIN_PASSWORD,
        ADMIN_PASSWORD_HASH="",
        OPENAI_API_KEY="",
        RATE_LIMIT_ENABLED=False,
        MAX_FILE_SIZE=1024,
    )


@pytest.fixture(scope="function")
def forms_dir(settings: Settings) -> Path:
    return settings.forms_path


@pytest.fixture(scope="function")
def store(settings: Settings) -> FormConfigStore:
    return FormConfigStore(settings.forms_path)


@pytest.fixture(scope="function")
def lifecycle(store: FormConfigStore) -> FormLifecycleService:
    return FormLifecycleService(store)


@pytest.fixture(scope="function")
def recorder(settings: Settings) -> SubmissionRecorder:
    return SubmissionRecorder(settings.submissions_path, settings.MAX_FILE_SIZE)


@pytest.fixture(scope="function")
def webhook_requests() -> List[httpx.Request]:
    """Requests captured by the fake webhook endpoint."""
    return []


@pytest.fixture(scope="function")
def webhook_transport(webhook_requests: List[httpx.Request]) -> httpx.MockTransport:
    """Fake webhook receiver: answers 200 to every request and records it."""
    def handler(request: httpx.Request) -> httpx.Response:
        webhook_requests.append(request)
        return httpx.Response(200, json={"ok": True})

    return httpx.MockTransport(handler)


@pytest.fixture(scope="function")
def api_app(settings: Settings, webhook_transport: httpx.MockTransport):
    """Application wired to temporary storage and a fake webhook receiver."""
    from app.main import create_app

    application = create_app(settings)
    application.state.webhook_dispatcher = WebhookDispatcher.from_settings(
        settings,
        client=build_webhook_client(settings, transport=webhook_transport)
    )
    return application


@pytest.fixture(scope="function")
def client(api_app) -> Generator:
    """Create a sync test client."""
    from fastapi.testclient import TestClient

    with TestClient(api_app) as test_client:
        yield test_client


@pytest.fixture(scope="function")
async def async_client(api_app) -> AsyncGenerator:
    """Create an async test client."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=api_app),
        base_url="http://test"
    ) as ac:
        yield ac


@pytest.fixture(scope="function")
def auth_headers(settings: Settings) -> Dict[str, str]:
    token = create_access_token(
        {"sub": "admin", "role": "admin"},
        secret_key=settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        expires_delta=timedelta(minutes=5)
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def create_form(lifecycle: FormLifecycleService) -> Callable:
    """Factory creating a stored form through the lifecycle service."""
    async def factory(name: str = "Client Intake!!", **kwargs: Any):
        kwargs.setdefault("description", "Collects basic client details")
        kwargs.setdefault("form_definition", sample_definition())
        return await lifecycle.create_form(name=name, **kwargs)

    return factory
