import asyncio
import csv
import io
import json
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional
import aiofiles
import aiofiles.os
from fastapi import UploadFile
from app.core.exceptions import FileUploadException, NoSubmissionsException
from app.core.logging_utils import sanitize_log_message
from app.core.time_utils import to_iso, unix_millis, utc_now
from app.models.form import FormConfig
from app.models.submission import SubmissionResult, UploadedFile

CSV_FILENAME = "responses.csv"
SNAPSHOT_FILENAME = "form-structure.md"
UPLOADS_DIRNAME = "uploads"

# Read uploads in 1MB chunks
UPLOAD_CHUNK_SIZE = 1024 * 1024

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_WORD_START = re.compile(r"\b\w")

logger = logging.getLogger(__name__)


def humanize_header(key: str) -> str:
    """`submitted_at` -> `Submitted At`"""
    return _WORD_START.sub(lambda m: m.group(0).upper(), key.replace("_", " "))


def format_csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def sanitize_upload_name(filename: Optional[str]) -> str:
    """
    Reduce a client-supplied filename to a safe basename.

    Path components are dropped and every character outside letters, digits,
    dots and hyphens becomes an underscore.
    """
    basename = os.path.basename((filename or "").replace("\\", "/"))
    if basename in ("", ".", ".."):
        basename = "upload"
    return _UNSAFE_FILENAME_CHARS.sub("_", basename)


def upload_timestamp() -> str:
    """ISO-8601 timestamp usable in a filename (`:` and `.` become `-`)."""
    return to_iso().replace(":", "-").replace(".", "-")


class SubmissionRecorder:
    """
    Append-only submission storage.

    Layout per form under `submissions_dir/{formId}/`:
        responses.csv       one header line, then one fully quoted row per submission
        form-structure.md   human-readable form outline and latest submission
        uploads/            uploaded files, timestamp-prefixed
    """

    def __init__(self, submissions_dir: Path, max_file_size: int):
        self.submissions_dir = Path(submissions_dir)
        self.max_file_size = max_file_size

    def _form_dir(self, form_id: str) -> Path:
        return self.submissions_dir / form_id

    def _csv_file(self, form_id: str) -> Path:
        return self._form_dir(form_id) / CSV_FILENAME

    async def record(self, form_config: FormConfig, fields: Dict[str, Any]) -> SubmissionResult:
        """
        Record one submission: append the CSV row and refresh the snapshot.

        Storage failures are logged and reported through `recorded=False`;
        they are never raised to the caller.

        Args:
            form_config: Form the submission belongs to
            fields: Answer fields (file fields already replaced by descriptors)

        Returns:
            SubmissionResult with the generated id and timestamp
        """
        now = utc_now()
        submission_id = f"{form_config.id}_{unix_millis(now)}"
        submitted_at = to_iso(now)
        record = {"submission_id": submission_id, "submitted_at": submitted_at}
        record.update((key, value) for key, value in fields.items() if key not in record)

        results = await asyncio.gather(
            self.append_csv(form_config.id, record),
            self.write_snapshot(form_config, record),
            return_exceptions=True
        )

        recorded = True
        for step, outcome in zip(("csv", "snapshot"), results):
            if isinstance(outcome, Exception):
                logger.error(sanitize_log_message(
                    "Failed to record submission",
                    FormID=form_config.id,
                    SubmissionID=submission_id,
                    Step=step,
                    Error=str(outcome)
                ))
                if step == "csv":
                    recorded = False

        if recorded:
            logger.info(sanitize_log_message(
                "Submission recorded",
                FormID=form_config.id,
                SubmissionID=submission_id,
                Fields=len(fields)
            ))

        return SubmissionResult(
            submission_id=submission_id,
            submitted_at=submitted_at,
            data=record,
            recorded=recorded
        )

    async def append_csv(self, form_id: str, record: Dict[str, Any]) -> None:
        """
        Append one row, writing the header first if the file is new.

        Header and row go out in a single write so concurrent appends never
        interleave inside a line.
        """
        form_dir = self._form_dir(form_id)
        await aiofiles.os.makedirs(form_dir, exist_ok=True)
        csv_file = self._csv_file(form_id)

        buffer = io.StringIO()
        exists = await aiofiles.os.path.exists(csv_file)
        if not exists:
            header_writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
            header_writer.writerow([humanize_header(key) for key in record])
        else:
            header_size = await self._header_size(csv_file)
            if header_size is not None and header_size != len(record):
                logger.warning(sanitize_log_message(
                    "Submission fields differ from CSV header",
                    FormID=form_id,
                    HeaderFields=header_size,
                    RowFields=len(record)
                ))

        row_writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        row_writer.writerow([format_csv_value(value) for value in record.values()])

        async with aiofiles.open(csv_file, "a", encoding="utf-8", newline="") as f:
            await f.write(buffer.getvalue())

    async def _header_size(self, csv_file: Path) -> Optional[int]:
        async with aiofiles.open(csv_file, "r", encoding="utf-8", newline="") as f:
            first_line = await f.readline()
        if not first_line:
            return None
        return len(next(csv.reader([first_line]), []))

    async def write_snapshot(self, form_config: FormConfig, record: Dict[str, Any]) -> None:
        form_dir = self._form_dir(form_config.id)
        await aiofiles.os.makedirs(form_dir, exist_ok=True)
        async with aiofiles.open(form_dir / SNAPSHOT_FILENAME, "w", encoding="utf-8") as f:
            await f.write(render_snapshot(form_config, record))

    async def store_upload(self, form_id: str, field_name: str, upload: UploadFile) -> UploadedFile:
        """
        Save an uploaded file under the form's uploads directory.

        Raises:
            FileUploadException: If the file exceeds the size limit
        """
        uploads_dir = self._form_dir(form_id) / UPLOADS_DIRNAME
        await aiofiles.os.makedirs(uploads_dir, exist_ok=True)

        original_name = upload.filename or ""
        filename = f"{upload_timestamp()}_{uuid.uuid4().hex[:8]}_{sanitize_upload_name(original_name)}"
        path = uploads_dir / filename

        size = 0
        async with aiofiles.open(path, "wb") as out:
            while True:
                chunk = await upload.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_file_size:
                    break
                await out.write(chunk)

        if size > self.max_file_size:
            await aiofiles.os.remove(path)
            logger.warning(sanitize_log_message(
                "Upload rejected: file too large",
                FormID=form_id,
                Field=field_name,
                MaxBytes=self.max_file_size
            ))
            raise FileUploadException(
                detail=f"File '{field_name}' exceeds the maximum size of {self.max_file_size} bytes"
            )

        logger.info(sanitize_log_message(
            "Upload stored",
            FormID=form_id,
            Field=field_name,
            File=filename,
            Size=size
        ))
        return UploadedFile(
            filename=filename,
            original_name=original_name,
            mimetype=upload.content_type or "application/octet-stream",
            size=size,
            path=str(path)
        )

    async def discard_uploads(self, form_id: str, uploads: List[UploadedFile]) -> None:
        """Remove files stored for a submission that was not recorded."""
        for upload in uploads:
            try:
                await aiofiles.os.remove(upload.path)
            except FileNotFoundError:
                continue
            logger.info(sanitize_log_message("Upload discarded", FormID=form_id, File=upload.filename))

    async def csv_path(self, form_id: str) -> Path:
        csv_file = self._csv_file(form_id)
        if not await aiofiles.os.path.isfile(csv_file):
            raise NoSubmissionsException()
        return csv_file

    async def _read_rows(self, form_id: str) -> List[List[str]]:
        csv_file = await self.csv_path(form_id)
        async with aiofiles.open(csv_file, "r", encoding="utf-8", newline="") as f:
            content = await f.read()
        return [row for row in csv.reader(io.StringIO(content)) if row]

    async def summarize(self, form_id: str) -> Dict[str, Any]:
        """
        Submission count and the newest submission as a header-keyed dict.

        Raises:
            NoSubmissionsException: If no CSV exists for the form
        """
        rows = await self._read_rows(form_id)
        header, data_rows = (rows[0], rows[1:]) if rows else ([], [])
        last = dict(zip(header, data_rows[-1])) if data_rows else None
        return {"totalSubmissions": len(data_rows), "lastSubmission": last}

    async def count_submissions(self, form_id: str) -> int:
        """
        Count data rows without parsing the file.

        A line ends a record only when it leaves the quote count even, so
        values spanning several lines are counted once.
        """
        csv_file = self._csv_file(form_id)
        if not await aiofiles.os.path.isfile(csv_file):
            return 0

        records = 0
        in_quotes = False
        async with aiofiles.open(csv_file, "r", encoding="utf-8", newline="") as f:
            async for line in f:
                if line.count('"') % 2:
                    in_quotes = not in_quotes
                if not in_quotes and line.strip():
                    records += 1
        return max(records - 1, 0)


def render_snapshot(form_config: FormConfig, record: Dict[str, Any]) -> str:
    """Markdown outline of the form followed by the latest submission."""
    definition = form_config.form_definition or {}
    lines = [
        f"# {definition.get('title') or form_config.name or form_config.id}",
        "",
        definition.get("description") or form_config.description or "No description provided",
        "",
        "## Form Structure",
        "",
    ]

    for page in definition.get("pages") or []:
        if not isinstance(page, dict):
            continue
        lines.append(f"### {page.get('title') or page.get('name', '')}")
        lines.append("")
        for element in page.get("elements") or []:
            if not isinstance(element, dict):
                continue
            line = f"- **{element.get('title') or element.get('name', '')}** ({element.get('type', '')})"
            if element.get("isRequired"):
                line += " *(Required)*"
            lines.append(line)
            if element.get("placeholder"):
                lines.append(f"  Placeholder: \"{element['placeholder']}\"")
            choices = element.get("choices")
            if isinstance(choices, list) and choices:
                labels = [c.get("text", c.get("value", "")) if isinstance(c, dict) else c for c in choices]
                lines.append(f"  Options: {', '.join(str(label) for label in labels)}")
        lines.append("")

    lines.extend([
        "## Latest Submission",
        "",
        f"**Submitted:** {record.get('submitted_at', '')}",
        "",
        "### Responses",
        "",
    ])
    for key, value in record.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, indent=2, ensure_ascii=False)
        lines.append(f"- **{key}:** {value}")

    lines.extend(["", "---", "*Generated automatically by the form dashboard*", ""])
    return "\n".join(lines)
