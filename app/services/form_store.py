import json
import logging
import uuid
from pathlib import Path
from typing import List, Optional
import aiofiles
import aiofiles.os
from pydantic import ValidationError
from app.core.exceptions import FormNotFoundException, FormNotPublicException
from app.core.logging_utils import sanitize_log_message
from app.core.slugs import is_valid_slug
from app.models.form import FormConfig

logger = logging.getLogger(__name__)


class FormConfigStore:
    """
    File-backed store of form configurations.

    One JSON document per form at `{forms_dir}/{id}.json`. Writes replace
    the whole file; there is no locking, so the last writer wins.
    """

    def __init__(self, forms_dir: Path):
        self.forms_dir = Path(forms_dir)

    def _form_path(self, form_id: str) -> Path:
        return self.forms_dir / f"{form_id}.json"

    async def _read_form(self, path: Path) -> FormConfig:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()
        return FormConfig.model_validate(json.loads(content))

    async def list_forms(self) -> List[FormConfig]:
        """
        Load every readable form file, in filename order.

        Files that fail to parse or validate are skipped with a warning.

        Returns:
            List of form configurations (empty when the directory is missing)
        """
        if not await aiofiles.os.path.isdir(self.forms_dir):
            return []

        filenames = sorted(
            name for name in await aiofiles.os.listdir(self.forms_dir)
            if name.endswith(".json")
        )

        forms = []
        for filename in filenames:
            try:
                forms.append(await self._read_form(self.forms_dir / filename))
            except (OSError, ValueError, ValidationError) as e:
                logger.warning(sanitize_log_message(
                    "Skipping unreadable form file",
                    File=filename,
                    Error=str(e)
                ))
        return forms

    async def form_exists(self, form_id: str) -> bool:
        if not is_valid_slug(form_id):
            return False
        return await aiofiles.os.path.isfile(self._form_path(form_id))

    async def get_form(self, form_id: str) -> FormConfig:
        """
        Load one form by id.

        Raises:
            FormNotFoundException: If the id is malformed or no file exists
        """
        if not is_valid_slug(form_id):
            raise FormNotFoundException()

        path = self._form_path(form_id)
        try:
            return await self._read_form(path)
        except FileNotFoundError:
            raise FormNotFoundException()
        except (ValueError, ValidationError) as e:
            logger.error(sanitize_log_message(
                "Form file is corrupt",
                FormID=form_id,
                Error=str(e)
            ))
            raise FormNotFoundException()

    async def get_form_by_slug(self, slug: str) -> FormConfig:
        """
        Resolve the publicly servable form behind a URL slug.

        Raises:
            FormNotFoundException: If no form uses the slug
            FormNotPublicException: If forms use the slug but none is servable
        """
        matches = [form for form in await self.list_forms() if form.url_slug == slug]
        if not matches:
            raise FormNotFoundException()

        if len(matches) > 1:
            logger.warning(sanitize_log_message(
                "URL slug is shared by several forms",
                Slug=slug,
                FormIDs=[form.id for form in matches]
            ))

        for form in matches:
            if form.is_servable:
                return form
        raise FormNotPublicException()

    async def find_slug_owner(self, slug: str, exclude_id: Optional[str] = None) -> Optional[FormConfig]:
        for form in await self.list_forms():
            if form.url_slug == slug and form.id != exclude_id:
                return form
        return None

    async def create_form(self, config: FormConfig) -> FormConfig:
        if await self.form_exists(config.id):
            logger.warning(sanitize_log_message(
                "Overwriting existing form with the same id",
                FormID=config.id
            ))
        return await self.save_form(config)

    async def save_form(self, config: FormConfig) -> FormConfig:
        """
        Write a form file, replacing any previous content.

        The document goes to a temporary sibling first and is then moved into
        place, so readers never see a half-written file.
        """
        if not is_valid_slug(config.id):
            raise FormNotFoundException()

        await aiofiles.os.makedirs(self.forms_dir, exist_ok=True)
        path = self._form_path(config.id)
        tmp_path = path.with_name(f".{config.id}.{uuid.uuid4().hex}.tmp")

        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(config.to_document(), indent=2, ensure_ascii=False))
        await aiofiles.os.replace(tmp_path, path)

        logger.debug(sanitize_log_message("Form saved", FormID=config.id))
        return config
