"""
File upload intake.

Normalises multipart form submissions and raw binary request bodies into a
list of :class:`UploadedFile` objects and validates them as one batch.
"""

from __future__ import annotations

import logging
import re
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence

from fastapi import Request
from starlette.datastructures import UploadFile

from admin_backend.errors import ValidationError

logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"
GLOBAL_MAX_FILES = 50
GLOBAL_MAX_FILE_SIZE = 50 * 1024 * 1024

_FILENAME_RE = re.compile(r"""filename[^;=\n]*=((['"]).*?\2|[^;\n]*)""")
_BINARY_PREFIXES = (OCTET_STREAM, "image/", "video/", "audio/", "application/pdf")
_FORM_PREFIXES = ("multipart/", "application/x-www-form-urlencoded", "application/json")


@dataclass
class UploadedFile:
    buffer: bytes
    original_name: str
    mimetype: str
    size: int
    field_name: str = "file"


@dataclass
class IntakeOptions:
    max_files: int = 20
    max_file_size: int = 10 * 1024 * 1024
    allowed_mime_types: Optional[Sequence[str]] = None
    field_name: str = "file"


@dataclass
class IntakeResult:
    files: List[UploadedFile] = field(default_factory=list)
    form_data: dict = field(default_factory=dict)
    upload_method: str = "none"

    @property
    def has_files(self) -> bool:
        return bool(self.files)

    def file_for(self, field_name: str) -> Optional[UploadedFile]:
        for uploaded in self.files:
            if uploaded.field_name == field_name:
                return uploaded
        return None


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.title())
    return value


def detect_mime_type(buffer: bytes) -> str:
    """Guess a MIME type from the leading bytes of a payload."""
    if len(buffer) < 4:
        return OCTET_STREAM
    if buffer[:4] == b"\x89PNG":
        return "image/png"
    if buffer[:2] == b"\xff\xd8":
        return "image/jpeg"
    if buffer[:3] == b"GIF":
        return "image/gif"
    if buffer[:4] == b"RIFF" and buffer[8:12] == b"WEBP":
        return "image/webp"
    text_start = buffer[:100].decode("utf-8", errors="ignore")
    if "<svg" in text_start or "<?xml" in text_start:
        return "image/svg+xml"
    if buffer[:4] == b"%PDF":
        return "application/pdf"
    return OCTET_STREAM


def extract_filename(headers: Mapping[str, str]) -> Optional[str]:
    disposition = _header(headers, "content-disposition")
    if disposition:
        match = _FILENAME_RE.search(disposition)
        if match:
            name = match.group(1).replace('"', "").replace("'", "").strip()
            if name:
                return name
    custom = _header(headers, "x-filename")
    return custom or None


def extract_mime_type(headers: Mapping[str, str], buffer: bytes) -> str:
    content_type = _header(headers, "content-type")
    if content_type:
        mimetype = content_type.split(";")[0].strip().lower()
        if mimetype and mimetype != OCTET_STREAM:
            return mimetype
    return detect_mime_type(buffer)


def generate_upload_name() -> str:
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(6))
    return f"upload_{int(time.time() * 1000)}_{suffix}"


def is_binary_upload(content_type: Optional[str]) -> bool:
    """True when a request body should be treated as one raw file."""
    content_type = (content_type or "").lower()
    if not content_type:
        return False
    if content_type.startswith(_BINARY_PREFIXES):
        return True
    return not content_type.startswith(_FORM_PREFIXES)


def validate_files(files: Sequence[UploadedFile], options: IntakeOptions) -> List[UploadedFile]:
    """Validate a batch; any bad file rejects the whole batch."""
    max_files = min(options.max_files or GLOBAL_MAX_FILES, GLOBAL_MAX_FILES)
    max_size = min(options.max_file_size or GLOBAL_MAX_FILE_SIZE, GLOBAL_MAX_FILE_SIZE)
    if len(files) > max_files:
        raise ValidationError(f"Too many files. Maximum allowed: {max_files}")
    for uploaded in files:
        if uploaded.size == 0:
            raise ValidationError(
                f"File validation failed: {uploaded.original_name} is empty"
            )
        if uploaded.size > max_size:
            raise ValidationError(
                f"File validation failed: size {uploaded.size} exceeds maximum "
                f"allowed size {max_size}"
            )
        if options.allowed_mime_types and uploaded.mimetype not in options.allowed_mime_types:
            raise ValidationError(
                f"File type {uploaded.mimetype} is not allowed. Allowed types: "
                f"{', '.join(options.allowed_mime_types)}"
            )
    return list(files)


def process_multipart(
    files: Iterable[UploadedFile],
    form_data: Optional[Mapping[str, str]] = None,
    options: Optional[IntakeOptions] = None,
) -> IntakeResult:
    options = options or IntakeOptions()
    validated = validate_files(list(files), options)
    field_names = {uploaded.field_name for uploaded in validated}
    cleaned = {k: v for k, v in (form_data or {}).items() if k not in field_names}
    logger.debug("Processed %d multipart file(s)", len(validated))
    return IntakeResult(files=validated, form_data=cleaned, upload_method="multipart")


def process_binary(
    body: bytes,
    headers: Mapping[str, str],
    options: Optional[IntakeOptions] = None,
) -> IntakeResult:
    options = options or IntakeOptions()
    if not body:
        raise ValidationError("No file data received in binary upload")
    uploaded = UploadedFile(
        buffer=body,
        original_name=extract_filename(headers) or generate_upload_name(),
        mimetype=extract_mime_type(headers, body),
        size=len(body),
        field_name=_header(headers, "x-field-name") or options.field_name,
    )
    validate_files([uploaded], options)
    logger.debug(
        "Converted binary body to file %s (%s, %d bytes)",
        uploaded.original_name,
        uploaded.mimetype,
        uploaded.size,
    )
    return IntakeResult(files=[uploaded], upload_method="binary")


async def read_upload(upload: UploadFile, field_name: str) -> UploadedFile:
    data = await upload.read()
    mimetype = (upload.content_type or "").split(";")[0].strip().lower()
    if not mimetype or mimetype == OCTET_STREAM:
        mimetype = detect_mime_type(data)
    return UploadedFile(
        buffer=data,
        original_name=upload.filename or generate_upload_name(),
        mimetype=mimetype,
        size=len(data),
        field_name=field_name,
    )


async def intake_request(
    request: Request, options: Optional[IntakeOptions] = None
) -> IntakeResult:
    """Collect files and plain fields from a FastAPI request of either shape."""
    options = options or IntakeOptions()
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form(
            max_files=GLOBAL_MAX_FILES, max_fields=1000
        )
        files: List[UploadedFile] = []
        form_data = {}
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                files.append(await read_upload(value, name))
            else:
                form_data[name] = value
        return process_multipart(files, form_data, options)
    if content_type.startswith("application/json"):
        payload = await request.json()
        if not isinstance(payload, dict):
            raise ValidationError("JSON body must be an object")
        return IntakeResult(form_data=payload, upload_method="none")
    if is_binary_upload(content_type):
        return process_binary(await request.body(), request.headers, options)
    return IntakeResult()
