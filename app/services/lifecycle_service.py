import copy
import logging
from typing import Any, Dict, Optional, Tuple
from app.core.exceptions import FormValidationException, SlugConflictException
from app.core.logging_utils import sanitize_log_message
from app.core.slugs import derive_form_id, is_valid_slug
from app.core.time_utils import utc_now
from app.models.form import FormConfig, FormSettings, FormStatus
from app.schemas.form import FormUpdateRequest, validate_form_definition
from app.services.form_store import FormConfigStore

logger = logging.getLogger(__name__)


def normalize_form_definition(definition: Dict[str, Any]) -> Dict[str, Any]:
    """Single-page forms get no progress bar."""
    definition = copy.deepcopy(definition)
    pages = definition.get("pages")
    if isinstance(pages, list) and len(pages) == 1:
        definition["showProgressBar"] = False
        definition.pop("progressBarType", None)
    return definition


class FormLifecycleService:
    """
    Status and visibility state machine on top of the form store.

    `status` and `isPublic` move together: Public implies public and
    Internal implies not public. Archiving leaves `isPublic` as it was.
    """

    def __init__(self, store: FormConfigStore):
        self.store = store

    @staticmethod
    def apply_visibility(
        config: FormConfig,
        is_public: Optional[bool] = None,
        status: Optional[FormStatus] = None
    ) -> FormConfig:
        """
        Apply a visibility change in place. `is_public` is applied before
        `status` when both are given.

        Args:
            config: Form to mutate
            is_public: New public flag, or None to leave it
            status: New status, or None to leave it

        Returns:
            The same config
        """
        if is_public is not None:
            config.is_public = is_public
            if is_public:
                config.status = FormStatus.PUBLIC
            elif config.status != FormStatus.ARCHIVED:
                config.status = FormStatus.INTERNAL

        if status is not None:
            config.status = status
            if status == FormStatus.PUBLIC:
                config.is_public = True
            elif status == FormStatus.INTERNAL:
                config.is_public = False

        return config

    async def create_form(
        self,
        name: str,
        description: str,
        form_definition: Dict[str, Any],
        webhook_url: Optional[str] = None,
        generated_by: Optional[str] = None,
        is_public: bool = False
    ) -> FormConfig:
        form_id = derive_form_id(name)
        if not form_id:
            raise FormValidationException(
                errors=[{"field": "name", "message": "must contain at least one letter or digit"}]
            )

        config = FormConfig(
            id=form_id,
            name=name,
            description=description,
            url_slug=form_id,
            webhook_url=webhook_url or None,
            status=FormStatus.INTERNAL,
            is_public=False,
            form_definition=normalize_form_definition(form_definition),
            generated_by=generated_by,
            settings=FormSettings(enable_webhook=bool(webhook_url)),
        )
        if is_public:
            self.apply_visibility(config, is_public=True)

        await self.store.create_form(config)
        logger.info(sanitize_log_message(
            "Form created",
            FormID=config.id,
            Status=config.status.value,
            GeneratedBy=generated_by
        ))
        return config

    async def update_form(self, form_id: str, patch: FormUpdateRequest) -> FormConfig:
        """
        Merge the fields present in `patch` into the stored form.

        Raises:
            FormNotFoundException: If the form does not exist
            SlugConflictException: If the new slug belongs to another form
            FormValidationException: If a new form definition is malformed
        """
        config = await self.store.get_form(form_id)
        fields = patch.model_fields_set

        if "form_definition" in fields and patch.form_definition is not None:
            errors = validate_form_definition(patch.form_definition)
            if errors:
                raise FormValidationException(detail="Invalid form definition", errors=errors)
            config.form_definition = patch.form_definition

        if "url_slug" in fields and patch.url_slug and patch.url_slug != config.url_slug:
            owner = await self.store.find_slug_owner(patch.url_slug, exclude_id=config.id)
            if owner is not None:
                raise SlugConflictException(
                    detail=f"URL slug '{patch.url_slug}' is already used by form '{owner.id}'"
                )
            config.url_slug = patch.url_slug

        if "title" in fields and patch.title is not None:
            config.name = patch.title
        if "name" in fields and patch.name is not None:
            config.name = patch.name
        if "description" in fields:
            config.description = patch.description or ""
        if "webhook_url" in fields:
            config.webhook_url = patch.webhook_url
            config.settings.enable_webhook = bool(patch.webhook_url)
        if "tags" in fields:
            config.tags = list(patch.tags or [])
        if "complete_text" in fields and patch.complete_text is not None:
            config.form_definition = dict(config.form_definition, completeText=patch.complete_text)

        self.apply_visibility(
            config,
            is_public=patch.is_public if "is_public" in fields else None,
            status=patch.status if "status" in fields else None
        )

        config.updated_at = utc_now()
        await self.store.save_form(config)

        logger.info(sanitize_log_message(
            "Form updated",
            FormID=config.id,
            Fields=sorted(fields),
            Status=config.status.value,
            IsPublic=config.is_public
        ))
        return config

    async def toggle_archive(self, form_id: str) -> FormConfig:
        config = await self.store.get_form(form_id)
        if config.status == FormStatus.ARCHIVED:
            self.apply_visibility(config, status=FormStatus.INTERNAL)
        else:
            self.apply_visibility(config, status=FormStatus.ARCHIVED)

        config.updated_at = utc_now()
        await self.store.save_form(config)

        logger.info(sanitize_log_message(
            "Form archive toggled",
            FormID=config.id,
            Status=config.status.value
        ))
        return config

    async def import_form(self, config: FormConfig) -> Tuple[FormConfig, str]:
        """
        Upsert a complete form configuration.

        The imported status decides `isPublic` unless the form is archived.

        Returns:
            Tuple of (stored config, "created" or "updated")
        """
        errors = validate_form_definition(config.form_definition)
        if not is_valid_slug(config.id):
            errors.insert(0, {"field": "id", "message": "may only contain lowercase letters, digits and hyphens"})
        if errors:
            raise FormValidationException(detail="Invalid form definition", errors=errors)

        action = "updated" if await self.store.form_exists(config.id) else "created"
        self.apply_visibility(config, status=config.status)
        config.updated_at = utc_now()
        await self.store.save_form(config)

        logger.info(sanitize_log_message("Form imported", FormID=config.id, Action=action))
        return config, action
