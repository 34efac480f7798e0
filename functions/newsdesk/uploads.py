"""
Streaming multipart upload pipeline.

A request body is pulled chunk by chunk, fed to a python-multipart parser and
checked after every chunk. One image file is buffered in memory (under a hard
size cap), validated, and only then forwarded to the blob store, so a bad or
truncated stream never leaves a partial object behind.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
import time
from dataclasses import dataclass, field
from typing import AsyncIterable, Optional

from botocore.exceptions import BotoCoreError, ClientError
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.concurrency import run_in_threadpool

from newsdesk.errors import (
    EmptyUpload,
    NewsdeskError,
    UnsupportedMediaType,
    UploadParseError,
    UploadTooLarge,
    UpstreamFailure,
)
from newsdesk.storage import StorageClient

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"})
DEFAULT_MAX_UPLOAD_BYTES = 6 * 1024 * 1024
FORM_OVERHEAD_BYTES = 1024 * 1024
MAX_FIELD_BYTES = 64 * 1024
MAX_FILENAME_LENGTH = 120


class UploadState(enum.Enum):
    AWAITING_HEADERS = "awaiting_headers"
    STREAMING_FILE = "streaming_file"
    BUFFERED = "buffered"
    FORWARDING = "forwarding"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class UploadedAsset:
    data: bytes
    filename: str
    content_type: str


@dataclass
class ParsedForm:
    fields: dict[str, str] = field(default_factory=dict)
    asset: Optional[UploadedAsset] = None


def safe_filename(name: Optional[str]) -> str:
    base = re.sub(r"[^a-zA-Z0-9._-]", "_", name or "image")
    return base[:MAX_FILENAME_LENGTH]


def normalize_content_type(value: Optional[str]) -> str:
    return (value or "").split(";", 1)[0].strip().lower()


def _decode(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return value.decode("latin-1")


class _FormCollector:
    """
    Parser callbacks for one request; records parts and the first error.

    ``state`` moves AWAITING_HEADERS -> STREAMING_FILE -> BUFFERED for the
    first accepted file part, or to FAILED. Later file parts are skipped.
    """

    def __init__(self, max_file_bytes: int):
        self.max_file_bytes = max_file_bytes
        self.state = UploadState.AWAITING_HEADERS
        self.fields: dict[str, str] = {}
        self.asset: Optional[UploadedAsset] = None
        self.error: Optional[NewsdeskError] = None
        self.finished = False

        self._headers: dict[str, str] = {}
        self._header_field = bytearray()
        self._header_value = bytearray()
        self._in_field = False
        self._name = ""
        self._filename = ""
        self._content_type = ""
        self._buffer = bytearray()

    def callbacks(self) -> dict:
        return {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_end": self.on_end,
        }

    def fail(self, error: NewsdeskError) -> None:
        if self.error is None:
            self.error = error
        self.state = UploadState.FAILED
        self._buffer = bytearray()

    def on_part_begin(self) -> None:
        self._headers = {}
        self._in_field = False
        self._buffer = bytearray()

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        name = _decode(bytes(self._header_field)).strip().lower()
        self._headers[name] = _decode(bytes(self._header_value)).strip()
        self._header_field = bytearray()
        self._header_value = bytearray()

    def on_headers_finished(self) -> None:
        if self.error:
            return
        _, options = parse_options_header(self._headers.get("content-disposition", ""))
        self._name = _decode(options.get(b"name", b""))
        if b"filename" not in options:
            self._in_field = True
            return

        self._filename = _decode(options[b"filename"])
        # An empty filename is what browsers send when no file was chosen.
        if not self._filename or self.state is not UploadState.AWAITING_HEADERS:
            return
        self._content_type = normalize_content_type(self._headers.get("content-type"))
        if self._content_type not in ALLOWED_IMAGE_TYPES:
            self.fail(
                UnsupportedMediaType(
                    f"Unsupported image type: {self._content_type or 'unknown'}"
                )
            )
            return
        self.state = UploadState.STREAMING_FILE

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self.error:
            return
        size = len(self._buffer) + (end - start)
        if self.state is UploadState.STREAMING_FILE:
            if size > self.max_file_bytes:
                self.fail(UploadTooLarge(f"File exceeds {self.max_file_bytes} bytes"))
                return
        elif not self._in_field:
            return
        elif size > MAX_FIELD_BYTES:
            self.fail(UploadParseError(f"Form field '{self._name}' is too large"))
            return
        self._buffer += data[start:end]

    def on_part_end(self) -> None:
        if self.error:
            return
        if self.state is UploadState.STREAMING_FILE:
            self.asset = UploadedAsset(
                data=bytes(self._buffer),
                filename=self._filename,
                content_type=self._content_type,
            )
            self.state = UploadState.BUFFERED
        elif self._in_field and self._name:
            self.fields.setdefault(self._name, _decode(bytes(self._buffer)))
        self._buffer = bytearray()
        self._in_field = False

    def on_end(self) -> None:
        self.finished = True


class UploadPipeline:
    """Reads multipart requests and forwards their image to a StorageClient."""

    def __init__(
        self,
        storage: StorageClient,
        *,
        max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        read_timeout: float = 30.0,
        key_prefix: str = "uploads",
    ):
        self.storage = storage
        self.max_bytes = max_bytes
        self.read_timeout = read_timeout
        self.key_prefix = key_prefix

    async def read_form(
        self, content_type: Optional[str], chunks: AsyncIterable[bytes]
    ) -> ParsedForm:
        """
        Pull the whole body from ``chunks`` and return its text fields and the
        first image file. Raises before returning if the stream is malformed,
        stalls, carries a disallowed type or exceeds the size cap.
        """
        media_type, params = parse_options_header(content_type or "")
        boundary = params.get(b"boundary")
        if media_type != b"multipart/form-data" or not boundary:
            raise UploadParseError("Expected a multipart/form-data body")

        collector = _FormCollector(self.max_bytes)
        parser = MultipartParser(boundary, collector.callbacks())
        max_body = self.max_bytes + FORM_OVERHEAD_BYTES
        received = 0
        iterator = chunks.__aiter__()
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(
                        iterator.__anext__(), timeout=self.read_timeout
                    )
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    raise UploadParseError("Timed out waiting for upload data")
                if not chunk:
                    continue
                received += len(chunk)
                if received > max_body:
                    raise UploadTooLarge(f"Request body exceeds {max_body} bytes")
                parser.write(chunk)
                if collector.error:
                    raise collector.error
            parser.finalize()
        except MultipartParseError as exc:
            collector.fail(UploadParseError())
            raise UploadParseError(f"Upload parse error: {exc}") from exc
        except NewsdeskError as exc:
            collector.fail(exc)
            raise

        if not collector.finished:
            collector.fail(UploadParseError())
            raise UploadParseError("Multipart body ended before the closing boundary")
        return ParsedForm(fields=collector.fields, asset=collector.asset)

    def object_key(self, filename: str) -> str:
        return f"{self.key_prefix}/{int(time.time() * 1000)}-{safe_filename(filename)}"

    async def forward(self, asset: UploadedAsset) -> str:
        """Validate a buffered asset and store it; return the public URL."""
        if not asset.data:
            raise EmptyUpload("Empty file")
        content_type = normalize_content_type(asset.content_type)
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise UnsupportedMediaType(f"Unsupported image type: {content_type or 'unknown'}")

        key = self.object_key(asset.filename)
        logger.debug("Upload %s: %s", key, UploadState.FORWARDING.value)
        try:
            url = await run_in_threadpool(
                self.storage.put_public, key, asset.data, content_type
            )
        except (BotoCoreError, ClientError, OSError) as exc:
            logger.exception("Upload %s: %s", key, UploadState.FAILED.value)
            raise UpstreamFailure(f"Upload failed: {exc}") from exc
        logger.info(
            "Upload %s: %s (%d bytes)", key, UploadState.COMPLETED.value, len(asset.data)
        )
        return url

    async def upload(
        self, content_type: Optional[str], chunks: AsyncIterable[bytes]
    ) -> str:
        form = await self.read_form(content_type, chunks)
        if form.asset is None:
            raise EmptyUpload("No file provided (field: image)")
        return await self.forward(form.asset)
