from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from gateway.core.errors import UploadTooLargeError, UploadValidationError

logger = logging.getLogger(__name__)

# Room for multipart boundaries and part headers around the file itself.
FORM_OVERHEAD_BYTES = 1024 * 1024


class MultipartFileReader:
    """Pulls one file field out of a ``multipart/form-data`` body as it arrives.

    Request chunks are fed to python-multipart only when ``read`` needs more
    bytes, so the file is never buffered beyond the chunk being parsed.
    ``max_bytes`` caps the file field; the raw body may exceed it by
    ``FORM_OVERHEAD_BYTES``.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        boundary: bytes,
        *,
        field_name: str = "file",
        max_bytes: int | None = None,
    ) -> None:
        self._chunks = chunks
        self._field_name = field_name.encode()
        self.max_bytes = max_bytes
        self.filename: str | None = None
        self.content_type: str | None = None

        self._found = False
        self._in_field = False
        self._field_done = False
        self._exhausted = False
        self._body_bytes = 0
        self._file_bytes = 0
        self._buffer = bytearray()
        self._headers: dict[bytes, bytes] = {}
        self._header_field = b""
        self._header_value = b""

        self._parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": self._on_part_begin,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
            },
        )

    @classmethod
    def from_content_type(
        cls,
        chunks: AsyncIterator[bytes],
        content_type: str | None,
        **kwargs,
    ) -> MultipartFileReader | None:
        """Returns ``None`` unless the header names a multipart form with a boundary."""
        media_type, params = parse_options_header(content_type)
        boundary = params.get(b"boundary")
        if media_type != b"multipart/form-data" or not boundary:
            return None
        return cls(chunks, boundary, **kwargs)

    def _on_part_begin(self) -> None:
        self._headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        if self._found:
            return
        _, options = parse_options_header(self._headers.get(b"content-disposition"))
        if options.get(b"name") != self._field_name:
            return
        self._found = True
        self._in_field = True
        filename = options.get(b"filename")
        if filename:
            self.filename = filename.decode("utf-8", errors="replace")
        content_type = self._headers.get(b"content-type")
        if content_type:
            self.content_type = content_type.decode("latin-1").strip()

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._in_field:
            self._buffer.extend(data[start:end])
            self._file_bytes += end - start

    def _on_part_end(self) -> None:
        if self._in_field:
            self._in_field = False
            self._field_done = True

    def _check_size(self) -> None:
        if self.max_bytes is None:
            return
        if self._file_bytes > self.max_bytes or self._body_bytes > self.max_bytes + FORM_OVERHEAD_BYTES:
            raise UploadTooLargeError(f"File exceeds the maximum upload size of {self.max_bytes} bytes.")

    async def _pull(self) -> bool:
        if self._exhausted:
            return False
        try:
            chunk = await anext(self._chunks)
        except StopAsyncIteration:
            chunk = b""
        try:
            if chunk:
                self._body_bytes += len(chunk)
                self._parser.write(chunk)
            else:
                self._exhausted = True
                self._parser.finalize()
        except MultipartParseError as exc:
            logger.warning("Rejected malformed multipart body: %s", exc)
            raise UploadValidationError("Invalid multipart form data.") from exc
        if self._exhausted and self._in_field:
            raise UploadValidationError("Invalid multipart form data.")
        self._check_size()
        return not self._exhausted

    async def open(self) -> bool:
        """Advances to the file field and reports whether it carries any bytes."""
        while not self._found and await self._pull():
            pass
        while self._found and not self._buffer and not self._field_done and await self._pull():
            pass
        return bool(self._buffer)

    async def read(self, size: int = -1) -> bytes:
        while (size < 0 or len(self._buffer) < size) and not self._field_done and await self._pull():
            pass
        if size < 0 or size >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
        else:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
        return data
