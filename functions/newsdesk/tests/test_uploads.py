import asyncio
import unittest

from python_multipart.multipart import MultipartParser

from newsdesk.errors import (
    EmptyUpload,
    UnsupportedMediaType,
    UploadParseError,
    UploadTooLarge,
    UpstreamFailure,
)
from newsdesk.storage import InMemoryStorageClient
from newsdesk.uploads import (
    UploadedAsset,
    UploadPipeline,
    UploadState,
    _FormCollector,
    safe_filename,
)

BOUNDARY = "----newsdesk-test-boundary"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def build_body(parts, *, close=True) -> bytes:
    """parts: (field name, value bytes, filename or None, content type or None)."""
    body = b""
    for name, value, filename, content_type in parts:
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        head = f"--{BOUNDARY}\r\nContent-Disposition: {disposition}\r\n"
        if content_type:
            head += f"Content-Type: {content_type}\r\n"
        body += head.encode() + b"\r\n" + value + b"\r\n"
    if close:
        body += f"--{BOUNDARY}--\r\n".encode()
    return body


async def chunked(data: bytes, size: int = 7):
    for start in range(0, len(data), size):
        yield data[start : start + size]


async def stalled():
    yield f"--{BOUNDARY}\r\n".encode()
    await asyncio.sleep(10)
    yield b""


class FailingStorageClient:
    def __init__(self):
        self.calls = 0

    def put_public(self, key: str, data: bytes, content_type: str) -> str:
        self.calls += 1
        raise OSError("bucket unavailable")


class UploadPipelineTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryStorageClient()
        self.pipeline = UploadPipeline(self.storage, max_bytes=64, read_timeout=0.2)

    def upload(self, body: bytes, content_type: str = CONTENT_TYPE) -> str:
        return asyncio.run(self.pipeline.upload(content_type, chunked(body)))

    def test_uploads_png_and_returns_store_url(self):
        body = build_body([("image", b"\x89PNG-bytes", "my photo (1).png", "image/png")])
        url = self.upload(body)

        self.assertTrue(url.startswith(self.storage.base_url + "/uploads/"))
        self.assertEqual(len(self.storage.stored_objects), 1)
        key, (data, content_type) = next(iter(self.storage.stored_objects.items()))
        self.assertIn("my_photo__1_", key)
        self.assertTrue(key.endswith(".png"))
        self.assertEqual(data, b"\x89PNG-bytes")
        self.assertEqual(content_type, "image/png")

    def test_text_plain_is_rejected_before_storage(self):
        body = build_body([("image", b"hello", "notes.txt", "text/plain")])
        with self.assertRaises(UnsupportedMediaType):
            self.upload(body)
        self.assertEqual(self.storage.stored_objects, {})

    def test_missing_part_content_type_is_rejected(self):
        body = build_body([("image", b"data", "blob.bin", None)])
        with self.assertRaises(UnsupportedMediaType):
            self.upload(body)

    def test_zero_byte_file_is_empty_upload(self):
        body = build_body([("image", b"", "empty.png", "image/png")])
        with self.assertRaises(EmptyUpload):
            self.upload(body)
        self.assertEqual(self.storage.stored_objects, {})

    def test_no_file_part_is_empty_upload(self):
        body = build_body([("title", b"just text", None, None)])
        with self.assertRaises(EmptyUpload):
            self.upload(body)

    def test_file_over_cap_is_rejected(self):
        body = build_body([("image", b"x" * 65, "big.gif", "image/gif")])
        with self.assertRaises(UploadTooLarge):
            self.upload(body)
        self.assertEqual(self.storage.stored_objects, {})

    def test_only_first_file_is_honored(self):
        body = build_body(
            [
                ("image", b"first", "a.webp", "image/webp"),
                ("image", b"second", "b.webp", "image/webp"),
            ]
        )
        self.upload(body)
        stored = [data for data, _ in self.storage.stored_objects.values()]
        self.assertEqual(stored, [b"first"])

    def test_truncated_stream_is_a_parse_error(self):
        body = build_body([("image", b"partial", "a.png", "image/png")], close=False)
        with self.assertRaises(UploadParseError):
            self.upload(body)
        self.assertEqual(self.storage.stored_objects, {})

    def test_garbage_body_is_a_parse_error(self):
        with self.assertRaises(UploadParseError):
            self.upload(b"this is not a multipart body at all")

    def test_non_multipart_request_is_a_parse_error(self):
        body = build_body([("image", b"data", "a.png", "image/png")])
        with self.assertRaises(UploadParseError):
            self.upload(body, content_type="application/json")

    def test_stalled_stream_times_out(self):
        pipeline = UploadPipeline(self.storage, read_timeout=0.05)
        with self.assertRaises(UploadParseError):
            asyncio.run(pipeline.upload(CONTENT_TYPE, stalled()))

    def test_read_form_collects_fields_and_skips_unchosen_file(self):
        body = build_body(
            [
                ("title", "Grüße".encode("utf-8"), None, None),
                ("source", b"https://example.com", None, None),
                ("image", b"", "", "application/octet-stream"),
            ]
        )
        form = asyncio.run(self.pipeline.read_form(CONTENT_TYPE, chunked(body, size=3)))
        self.assertEqual(form.fields, {"title": "Grüße", "source": "https://example.com"})
        self.assertIsNone(form.asset)

    def test_store_failure_is_upstream_failure(self):
        storage = FailingStorageClient()
        pipeline = UploadPipeline(storage)
        asset = UploadedAsset(data=b"png", filename="a.png", content_type="image/png")
        with self.assertRaises(UpstreamFailure):
            asyncio.run(pipeline.forward(asset))
        self.assertEqual(storage.calls, 1)

    def test_safe_filename(self):
        self.assertEqual(safe_filename("my photo (1).png"), "my_photo__1_.png")
        self.assertEqual(safe_filename(None), "image")
        self.assertEqual(len(safe_filename("a" * 500 + ".png")), 120)


class FormCollectorTests(unittest.TestCase):
    def collect(self, body: bytes, max_file_bytes: int = 64) -> _FormCollector:
        collector = _FormCollector(max_file_bytes)
        parser = MultipartParser(BOUNDARY.encode(), collector.callbacks())
        parser.write(body)
        parser.finalize()
        return collector

    def test_first_file_moves_to_buffered_and_later_files_are_skipped(self):
        collector = self.collect(
            build_body(
                [
                    ("image", b"one", "a.png", "image/png"),
                    ("note", b"kept", None, None),
                    ("image", b"two", "b.txt", "text/plain"),
                ]
            )
        )
        self.assertIs(collector.state, UploadState.BUFFERED)
        self.assertEqual(collector.asset.data, b"one")
        self.assertEqual(collector.fields, {"note": "kept"})
        self.assertIsNone(collector.error)

    def test_fields_only_stay_awaiting_headers(self):
        collector = self.collect(build_body([("title", b"Hello", None, None)]))
        self.assertIs(collector.state, UploadState.AWAITING_HEADERS)
        self.assertIsNone(collector.asset)

    def test_oversized_file_fails_collector(self):
        collector = self.collect(
            build_body([("image", b"x" * 10, "a.gif", "image/gif")]), max_file_bytes=4
        )
        self.assertIs(collector.state, UploadState.FAILED)
        self.assertIsInstance(collector.error, UploadTooLarge)
        self.assertIsNone(collector.asset)


if __name__ == "__main__":
    unittest.main()
