"""
Tests for the form schema generator client.
"""
import json
import httpx
import pytest
from app.core.circuit_breaker import CircuitBreaker, CircuitState
from app.core.exceptions import GeneratorException, GeneratorUnavailableException
from app.external.generator_client import SchemaGeneratorClient, strip_code_fences
from factories import sample_definition


def completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def make_generator(handler, api_key: str = "sk-test", **kwargs) -> SchemaGeneratorClient:
    return SchemaGeneratorClient(
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        api_key=api_key,
        **kwargs
    )


class TestStripCodeFences:
    """Tests for cleaning model output."""

    @pytest.mark.parametrize("content,expected", [
        ('{"a": 1}', '{"a": 1}'),
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ('```\n{"a": 1}\n```', '{"a": 1}'),
        ('  {"a": 1}  ', '{"a": 1}'),
    ])
    def test_strip(self, content, expected):
        assert strip_code_fences(content) == expected


class TestGenerate:
    """Tests for generating form definitions."""

    @pytest.mark.asyncio
    async def test_returns_parsed_definition(self):
        captured = []
        definition = sample_definition(pages=2)

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return completion("```json\n" + json.dumps(definition) + "\n```")

        generator = make_generator(handler, model="gpt-4o")

        result = await generator.generate("Client Intake", "Collect client details")

        assert result == definition
        request = captured[0]
        body = json.loads(request.content)
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert body["model"] == "gpt-4o"
        assert body["messages"][0]["role"] == "system"
        assert '"Client Intake"' in body["messages"][1]["content"]
        assert "Collect client details" in body["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_unconfigured_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        generator = make_generator(handler, api_key="")

        with pytest.raises(GeneratorUnavailableException) as exc_info:
            await generator.generate("Name", "Description")

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_invalid_json_rejected(self):
        generator = make_generator(lambda request: completion("Sure! Here is your form: {"))

        with pytest.raises(GeneratorException) as exc_info:
            await generator.generate("Name", "Description")

        assert exc_info.value.detail == "AI generated invalid form structure"
        assert exc_info.value.reason is None

    @pytest.mark.asyncio
    async def test_missing_pages_rejected(self):
        generator = make_generator(
            lambda request: completion(json.dumps({"title": "No pages"})),
            expose_errors=True
        )

        with pytest.raises(GeneratorException) as exc_info:
            await generator.generate("Name", "Description")

        assert "formDefinition.pages" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_upstream_error(self):
        generator = make_generator(
            lambda request: httpx.Response(429, json={"error": {"message": "Rate limit"}}),
            expose_errors=True
        )

        with pytest.raises(GeneratorException) as exc_info:
            await generator.generate("Name", "Description")

        assert exc_info.value.status_code == 500
        assert "429" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_open_circuit_is_unavailable(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        breaker = CircuitBreaker(name="generator_api", failure_threshold=1, recovery_timeout=60)
        generator = make_generator(handler, circuit_breaker=breaker)

        with pytest.raises(GeneratorException):
            await generator.generate("Name", "Description")
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(GeneratorUnavailableException):
            await generator.generate("Name", "Description")
        assert len(calls) == 1
