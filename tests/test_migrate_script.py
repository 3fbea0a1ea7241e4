"""
Tests for the form migration command line tool.
"""
import json
import httpx
import pytest
from scripts.migrate_forms import login, main, migrate_forms, parse_args, read_local_forms
from factories import write_form_file


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://forms.example.com")


class TestReadLocalForms:
    """Tests for loading form files from disk."""

    def test_reads_all_sorted(self, tmp_path):
        write_form_file(tmp_path, "b-form")
        write_form_file(tmp_path, "a-form")

        forms = read_local_forms(tmp_path)

        assert [form["id"] for form in forms] == ["a-form", "b-form"]

    def test_filters_by_id(self, tmp_path):
        write_form_file(tmp_path, "keep")
        write_form_file(tmp_path, "skip")

        forms = read_local_forms(tmp_path, only=["keep"])

        assert [form["id"] for form in forms] == ["keep"]

    def test_skips_unreadable_files(self, tmp_path):
        write_form_file(tmp_path, "good")
        (tmp_path / "bad.json").write_text("{", encoding="utf-8")

        assert [form["id"] for form in read_local_forms(tmp_path)] == ["good"]


class TestMigrateForms:
    """Tests for pushing forms to the API."""

    @pytest.mark.asyncio
    async def test_login_returns_token(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/auth/login"
            assert json.loads(request.content) == {"username": "admin", "password": "pw"}
            return httpx.Response(200, json={"success": True, "token": "jwt-token", "authEnabled": True})

        async with make_client(handler) as client:
            assert await login(client, "admin", "pw") == "jwt-token"

    @pytest.mark.asyncio
    async def test_login_rejected(self):
        async with make_client(lambda request: httpx.Response(401, json={"detail": "no"})) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await login(client, "admin", "wrong")

    @pytest.mark.asyncio
    async def test_counts_actions_and_failures(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            seen.append((body["id"], request.headers.get("Authorization")))
            if body["id"] == "broken":
                return httpx.Response(400, json={"detail": "Invalid form configuration"})
            action = "created" if body["id"] == "new" else "updated"
            return httpx.Response(200, json={"success": True, "action": action, "formId": body["id"]})

        forms = [{"id": "new"}, {"id": "existing"}, {"id": "broken"}]
        async with make_client(handler) as client:
            summary = await migrate_forms(client, forms, token="jwt-token")

        assert summary == {"created": 1, "updated": 1, "failed": 1}
        assert [form_id for form_id, _ in seen] == ["new", "existing", "broken"]
        assert all(auth == "Bearer jwt-token" for _, auth in seen)

    @pytest.mark.asyncio
    async def test_dry_run_sends_nothing(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("dry run must not call the API")

        async with make_client(handler) as client:
            summary = await migrate_forms(client, [{"id": "a", "name": "A"}], dry_run=True)

        assert summary == {"created": 0, "updated": 0, "failed": 0}


class TestCli:
    """Tests for argument handling."""

    def test_defaults(self):
        args = parse_args([])

        assert args.target == "production"
        assert args.dry_run is False
        assert args.forms is None

    def test_flags(self):
        args = parse_args(["--target", "local", "--forms", "a,b", "--dry-run", "--verbose"])

        assert args.target == "local"
        assert args.forms == "a,b"
        assert args.dry_run is True
        assert args.verbose is True

    @pytest.mark.asyncio
    async def test_dry_run_main(self, tmp_path):
        write_form_file(tmp_path, "one")

        code = await main(["--api-url", "https://forms.example.com", "--forms-dir", str(tmp_path), "--dry-run"])

        assert code == 0

    @pytest.mark.asyncio
    async def test_empty_directory(self, tmp_path):
        assert await main(["--api-url", "https://forms.example.com", "--forms-dir", str(tmp_path)]) == 0
