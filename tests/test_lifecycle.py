"""
Tests for the form status/visibility state machine and partial updates.
"""
import itertools
import pytest
from pydantic import ValidationError
from app.core.exceptions import FormNotFoundException, FormValidationException, SlugConflictException
from app.models.form import FormConfig, FormStatus
from app.schemas.form import FormUpdateRequest
from app.services.lifecycle_service import FormLifecycleService, normalize_form_definition
from factories import sample_definition


def make_config(status=FormStatus.INTERNAL, is_public=False) -> FormConfig:
    return FormConfig(id="f", name="F", url_slug="f", status=status, is_public=is_public)


class TestApplyVisibility:
    """Tests for the pure visibility transition."""

    @pytest.mark.parametrize("start_status,start_public,is_public,status,end_status,end_public", [
        (FormStatus.INTERNAL, False, True, None, FormStatus.PUBLIC, True),
        (FormStatus.PUBLIC, True, False, None, FormStatus.INTERNAL, False),
        (FormStatus.ARCHIVED, True, False, None, FormStatus.ARCHIVED, False),
        (FormStatus.INTERNAL, False, None, FormStatus.PUBLIC, FormStatus.PUBLIC, True),
        (FormStatus.PUBLIC, True, None, FormStatus.INTERNAL, FormStatus.INTERNAL, False),
        (FormStatus.PUBLIC, True, None, FormStatus.ARCHIVED, FormStatus.ARCHIVED, True),
        (FormStatus.INTERNAL, False, None, FormStatus.ARCHIVED, FormStatus.ARCHIVED, False),
        # isPublic is applied first, then status
        (FormStatus.INTERNAL, False, True, FormStatus.INTERNAL, FormStatus.INTERNAL, False),
        (FormStatus.INTERNAL, False, True, FormStatus.ARCHIVED, FormStatus.ARCHIVED, True),
    ])
    def test_transition(self, start_status, start_public, is_public, status, end_status, end_public):
        config = make_config(start_status, start_public)

        FormLifecycleService.apply_visibility(config, is_public=is_public, status=status)

        assert config.status == end_status
        assert config.is_public is end_public

    def test_no_change_when_nothing_given(self):
        config = make_config(FormStatus.PUBLIC, True)

        FormLifecycleService.apply_visibility(config)

        assert config.status == FormStatus.PUBLIC
        assert config.is_public is True

    def test_sync_invariant_over_sequences(self):
        """Public implies public flag and Internal implies no public flag, after every step."""
        steps = [
            {"is_public": True}, {"is_public": False},
            {"status": FormStatus.PUBLIC}, {"status": FormStatus.INTERNAL}, {"status": FormStatus.ARCHIVED},
            {"is_public": True, "status": FormStatus.ARCHIVED},
        ]
        for sequence in itertools.product(steps, repeat=3):
            config = make_config()
            for step in sequence:
                FormLifecycleService.apply_visibility(config, **step)
                if config.is_public:
                    assert config.status in (FormStatus.PUBLIC, FormStatus.ARCHIVED)
                if config.status == FormStatus.INTERNAL:
                    assert config.is_public is False
                if config.status == FormStatus.PUBLIC:
                    assert config.is_public is True


class TestNormalizeFormDefinition:
    """Tests for progress bar normalization."""

    def test_single_page_drops_progress_bar(self):
        definition = normalize_form_definition(sample_definition(pages=1))

        assert definition["showProgressBar"] is False
        assert "progressBarType" not in definition

    def test_multi_page_untouched(self):
        original = sample_definition(pages=2)

        definition = normalize_form_definition(original)

        assert definition == original

    def test_input_not_mutated(self):
        original = sample_definition(pages=1)

        normalize_form_definition(original)

        assert original["progressBarType"] == "buttons"


class TestCreateForm:
    """Tests for creating forms."""

    @pytest.mark.asyncio
    async def test_create_derives_id_and_initial_state(self, create_form, store):
        form = await create_form("Client Intake!!", webhook_url="https://hooks.example.com/x")

        assert form.id == "client-intake"
        assert form.url_slug == "client-intake"
        assert form.status == FormStatus.INTERNAL
        assert form.is_public is False
        assert form.settings.enable_webhook is True
        assert form.form_definition["showProgressBar"] is False
        assert (await store.get_form("client-intake")).name == "Client Intake!!"

    @pytest.mark.asyncio
    async def test_create_without_webhook(self, create_form):
        form = await create_form("Feedback")

        assert form.webhook_url is None
        assert form.settings.enable_webhook is False

    @pytest.mark.asyncio
    async def test_create_public(self, create_form):
        form = await create_form("Open Form", is_public=True)

        assert form.status == FormStatus.PUBLIC
        assert form.is_public is True

    @pytest.mark.asyncio
    async def test_name_without_usable_characters_rejected(self, create_form):
        with pytest.raises(FormValidationException):
            await create_form("!!!")


class TestUpdateForm:
    """Tests for PATCH semantics."""

    @pytest.mark.asyncio
    async def test_partial_update_changes_only_given_fields(self, create_form, lifecycle, store):
        before = await create_form("Client Intake")

        patch = FormUpdateRequest.model_validate({"description": "x"})
        await lifecycle.update_form(before.id, patch)
        after = await store.get_form(before.id)

        assert after.description == "x"
        assert after.updated_at is not None
        unchanged = before.to_document()
        changed = after.to_document()
        for key in ("description", "updatedAt"):
            unchanged.pop(key)
            changed.pop(key)
        assert changed == unchanged

    @pytest.mark.asyncio
    async def test_unknown_form_raises_not_found(self, lifecycle):
        with pytest.raises(FormNotFoundException):
            await lifecycle.update_form("missing", FormUpdateRequest.model_validate({"description": "x"}))

    @pytest.mark.asyncio
    async def test_is_public_true_publishes(self, create_form, lifecycle):
        form = await create_form()

        updated = await lifecycle.update_form(form.id, FormUpdateRequest.model_validate({"isPublic": True}))

        assert updated.status == FormStatus.PUBLIC
        assert updated.is_public is True

    @pytest.mark.asyncio
    async def test_archive_keeps_public_flag(self, create_form, lifecycle):
        form = await create_form(is_public=True)

        updated = await lifecycle.update_form(form.id, FormUpdateRequest.model_validate({"status": "Archived"}))

        assert updated.status == FormStatus.ARCHIVED
        assert updated.is_public is True

    @pytest.mark.parametrize("value", ["published", "Published", "draft", "ARCHIVED", "", "Deleted"])
    def test_unknown_status_names_rejected(self, value):
        with pytest.raises(ValidationError) as exc_info:
            FormUpdateRequest.model_validate({"status": value})

        assert exc_info.value.errors()[0]["loc"] == ("status",)

    @pytest.mark.parametrize("url", ["ftp://example.com/x", "http://127.0.0.1/x", "not a url"])
    def test_invalid_webhook_url_rejected(self, url):
        with pytest.raises(ValidationError) as exc_info:
            FormUpdateRequest.model_validate({"webhookUrl": url})

        assert exc_info.value.errors()[0]["loc"] == ("webhookUrl",)
        assert "Invalid webhook URL" in exc_info.value.errors()[0]["msg"]

    @pytest.mark.asyncio
    async def test_title_alias_and_complete_text(self, create_form, lifecycle):
        form = await create_form()

        updated = await lifecycle.update_form(
            form.id,
            FormUpdateRequest.model_validate({"title": "Renamed", "completeText": "Send"})
        )

        assert updated.name == "Renamed"
        assert updated.id == form.id
        assert updated.form_definition["completeText"] == "Send"
        assert updated.form_definition["pages"] == form.form_definition["pages"]

    @pytest.mark.asyncio
    async def test_tags_and_webhook(self, create_form, lifecycle):
        form = await create_form(webhook_url="https://hooks.example.com/a")

        updated = await lifecycle.update_form(
            form.id,
            FormUpdateRequest.model_validate({"tags": ["hr", "onboarding"], "webhookUrl": ""})
        )

        assert updated.tags == ["hr", "onboarding"]
        assert updated.webhook_url is None
        assert updated.settings.enable_webhook is False

    @pytest.mark.asyncio
    async def test_adding_webhook_enables_it(self, create_form, lifecycle, store):
        form = await create_form()
        assert form.settings.enable_webhook is False

        await lifecycle.update_form(
            form.id,
            FormUpdateRequest.model_validate({"webhookUrl": "https://hooks.example.com/new"})
        )
        stored = await store.get_form(form.id)

        assert stored.webhook_url == "https://hooks.example.com/new"
        assert stored.settings.enable_webhook is True

    @pytest.mark.asyncio
    async def test_slug_conflict_rejected(self, create_form, lifecycle, store):
        await create_form("First")
        second = await create_form("Second")

        with pytest.raises(SlugConflictException):
            await lifecycle.update_form(second.id, FormUpdateRequest.model_validate({"urlSlug": "first"}))

        assert (await store.get_form("second")).url_slug == "second"

    @pytest.mark.asyncio
    async def test_slug_change(self, create_form, lifecycle):
        form = await create_form()

        updated = await lifecycle.update_form(form.id, FormUpdateRequest.model_validate({"urlSlug": "join"}))

        assert updated.url_slug == "join"
        assert updated.id == "client-intake"

    @pytest.mark.asyncio
    async def test_invalid_definition_rejected(self, create_form, lifecycle):
        form = await create_form()

        with pytest.raises(FormValidationException) as exc_info:
            await lifecycle.update_form(
                form.id,
                FormUpdateRequest.model_validate({"formDefinition": {"title": "T", "pages": []}})
            )

        assert exc_info.value.errors[0]["field"] == "formDefinition.pages"


class TestToggleArchive:
    """Tests for the archive toggle."""

    @pytest.mark.asyncio
    async def test_archive_then_restore(self, create_form, lifecycle):
        form = await create_form(is_public=True)

        archived = await lifecycle.toggle_archive(form.id)
        assert archived.status == FormStatus.ARCHIVED
        assert archived.is_public is True

        restored = await lifecycle.toggle_archive(form.id)
        assert restored.status == FormStatus.INTERNAL
        assert restored.is_public is False


class TestImportForm:
    """Tests for the migration upsert."""

    @pytest.mark.asyncio
    async def test_created_then_updated(self, lifecycle, store):
        config = FormConfig.model_validate({
            "id": "imported",
            "name": "Imported",
            "status": "Public",
            "isPublic": False,
            "formDefinition": sample_definition(),
        })

        _, first = await lifecycle.import_form(config)
        stored, second = await lifecycle.import_form(config)

        assert (first, second) == ("created", "updated")
        assert stored.is_public is True
        assert (await store.get_form("imported")).status == FormStatus.PUBLIC

    @pytest.mark.asyncio
    async def test_invalid_id_rejected(self, lifecycle):
        config = FormConfig.model_validate({"id": "Bad Id", "name": "X", "formDefinition": sample_definition()})

        with pytest.raises(FormValidationException):
            await lifecycle.import_form(config)
