import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, Optional
import httpx
from app.config import Settings
from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from app.core.exceptions import GeneratorException, GeneratorUnavailableException
from app.core.logging_utils import sanitize_log_message
from app.schemas.form import validate_form_definition

logger = logging.getLogger(__name__)

GENERATED_BY = "GPT-4o"

SYSTEM_PROMPT = """You are an expert form builder AI that creates professional SurveyJS form configurations.

Your task is to generate a complete SurveyJS form definition based on the user's description. The form should:

1. Follow SurveyJS best practices and modern survey design principles
2. Include appropriate question types for the use case
3. Have logical page breaks for multi-step forms when appropriate
4. Include proper validation rules
5. Use professional, clear question text
6. Include helpful placeholder text
7. Group related questions logically
8. Generate a professional, concise description that describes what the form collects

Available SurveyJS question types:
- text: Simple text input
- comment: Multi-line text area
- dropdown: Single selection dropdown
- checkbox: Multiple selection checkboxes
- radiogroup: Single selection radio buttons
- rating: Rating scale (1-5, 1-10, etc.)
- ranking: Rank items in order
- boolean: Yes/No or True/False
- email: Email input with validation
- file: File upload
- html: Display HTML content
- matrix: Grid of questions
- matrixdynamic: Dynamic matrix with add/remove rows
- paneldynamic: Repeating panel of questions

Form structure should include:
- title and description (generate a professional description, don't copy user input)
- checkErrorsMode: "onNext" for multi-page forms, "onComplete" for single-page forms
- showProgressBar: "top" for multi-page forms, "false" for single-page forms
- progressBarType: "buttons" for multi-page forms
- showQuestionNumbers: "off" for cleaner look
- pages array with elements, every page with a name and every element with a type and a name
- completeText: "Submit Form"

Return ONLY the JSON object, no additional text or explanation."""

USER_PROMPT_TEMPLATE = """Create a professional form for: "{name}"

Description: {description}

Generate a complete SurveyJS form definition that captures all the necessary information based on this description. Make it user-friendly, logical, and comprehensive."""

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?|\n?```")


def strip_code_fences(content: str) -> str:
    return _CODE_FENCE.sub("", content).strip()


class SchemaGeneratorClient:
    """Client for the OpenAI-compatible chat completions API that drafts form definitions."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        temperature: float = 0.7,
        max_tokens: int = 4000,
        circuit_breaker: Optional[CircuitBreaker] = None,
        expose_errors: bool = False
    ):
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name="generator_api")
        self.expose_errors = expose_errors

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "SchemaGeneratorClient":
        return cls(
            client=client or httpx.AsyncClient(timeout=settings.GENERATOR_TIMEOUT),
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_API_URL,
            model=settings.OPENAI_MODEL,
            temperature=settings.GENERATOR_TEMPERATURE,
            max_tokens=settings.GENERATOR_MAX_TOKENS,
            circuit_breaker=CircuitBreaker(
                name="generator_api",
                failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                recovery_timeout=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
                half_open_max_calls=settings.CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
            ),
            expose_errors=settings.is_development,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def _execute_request(self, payload: Dict[str, Any]) -> httpx.Response:
        """Single completion call (wrapped by the circuit breaker)."""
        response = await self.client.post(
            f"{self.base_url}/chat/completions",
            headers=self._get_headers(),
            json=payload
        )
        response.raise_for_status()
        return response

    def _fail(self, message: str, reason: str) -> GeneratorException:
        logger.error(sanitize_log_message(message, Reason=reason))
        return GeneratorException(detail=message, reason=reason if self.expose_errors else None)

    async def generate(self, name: str, description: str) -> Dict[str, Any]:
        """
        Ask the model for a form definition and validate its shape.

        Args:
            name: Form name
            description: What the form should collect

        Returns:
            Parsed form definition

        Raises:
            GeneratorUnavailableException: No API key, or the circuit is open
            GeneratorException: Upstream error or unusable output
        """
        if not self.is_configured:
            raise GeneratorUnavailableException()

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": USER_PROMPT_TEMPLATE.format(name=name, description=description)},
            ],
            "temperature": self.temperature,
            "max_completion_tokens": self.max_tokens,
        }

        logger.info(sanitize_log_message("Requesting form definition", FormName=name, Model=self.model))
        start_time = datetime.now()

        try:
            response = await self.circuit_breaker.call(self._execute_request, payload)
        except CircuitBreakerOpenException as e:
            logger.warning(sanitize_log_message("Generator circuit open", Error=e.message))
            raise GeneratorUnavailableException(
                detail="Form generation is temporarily unavailable. Please retry later."
            )
        except httpx.HTTPStatusError as e:
            raise self._fail(
                "Failed to generate form",
                f"Generator API error: {e.response.status_code} - {e.response.text[:500]}"
            )
        except httpx.HTTPError as e:
            raise self._fail("Failed to generate form", f"{type(e).__name__}: {e}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise self._fail("AI generated invalid form structure", f"Unexpected completion payload: {e}")

        try:
            definition = json.loads(strip_code_fences(content or ""))
        except ValueError as e:
            raise self._fail("AI generated invalid form structure", f"Invalid JSON: {e}")

        errors = validate_form_definition(definition)
        if errors:
            raise self._fail(
                "AI generated invalid form structure",
                "; ".join(f"{err['field']} {err['message']}" for err in errors)
            )

        logger.info(sanitize_log_message(
            "Form definition generated",
            FormName=name,
            Pages=len(definition["pages"]),
            ResponseTime=f"{(datetime.now() - start_time).total_seconds():.3f}s"
        ))
        return definition

    async def close(self) -> None:
        await self.client.aclose()
