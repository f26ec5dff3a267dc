"""Multipart/related payloads for JSON-plus-attachments uploads.

The receiving API expects a fixed layout: the JSON part first with
``Content-ID: <startpart>``, then one part per file tagged
``<fileattachment0>``, ``<fileattachment1>``, ... with a
``Content-Location`` equal to the file's basename. The boundary token is
the literal ``foo`` and the overall Content-Type names the start part.

File content types come from an ordered probing chain: magic bytes at the
start of the file, then the filename extension, then a binary default.
The first probe returning a value wins; reordering the chain changes what
the server sees on the wire.
"""

from __future__ import annotations

import mimetypes
import os
from typing import Callable

from rest_client.models import MultipartPart

BOUNDARY = "foo"
START_CONTENT_ID = "<startpart>"
JSON_PART_NAME = "root-fields"
JSON_CONTENT_TYPE = "application/json"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
MULTIPART_CONTENT_TYPE = (
    'multipart/form-data; type="application/json"; '
    f'start="{START_CONTENT_ID}"; boundary="{BOUNDARY}"'
)

# Number of leading bytes the stream probe looks at.
_SNIFF_LENGTH = 16

_CRLF = b"\r\n"


# ---------------------------------------------------------------------------
# Content-type probing
# ---------------------------------------------------------------------------


def _sniff_markup(head: bytes) -> str | None:
    """Classify a '<'-prefixed head as HTML or XML."""
    if head.startswith(b"<?xml"):
        return "application/xml"
    lowered = head.lower()
    if head.startswith(b"<!") or lowered.startswith((b"<html", b"<head", b"<body")):
        return "text/html"
    return None


def sniff_bytes(head: bytes) -> str | None:
    """Guess a content type from the first bytes of a payload.

    Covers the formats recognised by the classic stream sniffers: GIF, PNG,
    JPEG, X bitmap/pixmap, Sun audio, WAV, XML (with or without a BOM) and
    HTML. Returns None for anything else.
    """
    if not head:
        return None

    if head.startswith(b"<"):
        return _sniff_markup(head)
    if head.startswith(b"\xef\xbb\xbf<?xml"):
        return "application/xml"
    if head.startswith((b"\xfe\xff\x00<\x00?\x00x", b"\xff\xfe<\x00?\x00x\x00")):
        return "application/xml"

    if head.startswith(b"GIF8"):
        return "image/gif"
    if head.startswith(b"#def"):
        return "image/x-bitmap"
    if head.startswith(b"! XPM2"):
        return "image/x-pixmap"
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if head.startswith(b"\xff\xd8\xff") and len(head) > 3 and head[3] in (0xE0, 0xE1, 0xEE):
        return "image/jpeg"
    if head.startswith(b".snd"):
        return "audio/basic"
    if head.startswith(b"RIFF"):
        return "audio/x-wav"

    return None


def probe_stream(path: str) -> str | None:
    """Content type from the file's leading bytes."""
    with open(path, "rb") as f:
        return sniff_bytes(f.read(_SNIFF_LENGTH))


def probe_filename(path: str) -> str | None:
    """Content type from the file extension."""
    content_type, _ = mimetypes.guess_type(os.path.basename(path), strict=False)
    return content_type


def probe_default(path: str) -> str | None:
    return DEFAULT_CONTENT_TYPE


CONTENT_TYPE_PROBES: tuple[Callable[[str], str | None], ...] = (
    probe_stream,
    probe_filename,
    probe_default,
)


def detect_content_type(
    path: str,
    probes: tuple[Callable[[str], str | None], ...] = CONTENT_TYPE_PROBES,
) -> str:
    """Run the probes in order and return the first answer.

    Raises:
        OSError: If the file cannot be opened by a probe that reads it.
    """
    for probe in probes:
        content_type = probe(path)
        if content_type is not None:
            return content_type
    return DEFAULT_CONTENT_TYPE


# ---------------------------------------------------------------------------
# Part construction and encoding
# ---------------------------------------------------------------------------


def build_parts(json_text: str, file_names: list[str]) -> tuple[MultipartPart, ...]:
    """Describe the JSON start part followed by one part per file.

    Raises:
        OSError: If a file cannot be read for content-type probing.
    """
    parts = [
        MultipartPart(
            name=JSON_PART_NAME,
            content_type=JSON_CONTENT_TYPE,
            content_id=START_CONTENT_ID,
            text=json_text,
        )
    ]
    for index, path in enumerate(file_names):
        filename = os.path.basename(path)
        parts.append(
            MultipartPart(
                name=filename,
                content_type=detect_content_type(path),
                content_id=f"<fileattachment{index}>",
                path=path,
                filename=filename,
            )
        )
    return tuple(parts)


def _part_headers(part: MultipartPart) -> list[str]:
    if part.is_file:
        lines = [
            f'Content-Disposition: form-data; name="{part.name}"; filename="{part.filename}"',
            f"Content-Type: {part.content_type}",
            "Content-Transfer-Encoding: binary",
            f"Content-ID: {part.content_id}",
            f"Content-Location: {part.filename}",
        ]
    else:
        lines = [
            f'Content-Disposition: form-data; name="{part.name}"',
            f"Content-Type: {part.content_type}",
            "Content-Transfer-Encoding: 8bit",
            f"Content-ID: {part.content_id}",
        ]
    return lines


def _part_content(part: MultipartPart) -> bytes:
    if part.is_file:
        with open(part.path, "rb") as f:
            return f.read()
    return part.text.encode("utf-8")


def encode_multipart(parts: tuple[MultipartPart, ...] | list[MultipartPart]) -> bytes:
    """Serialize parts into a multipart body using the fixed boundary.

    Raises:
        OSError: If an attached file cannot be read.
    """
    delimiter = f"--{BOUNDARY}".encode("ascii")
    chunks: list[bytes] = []
    for part in parts:
        chunks.append(delimiter + _CRLF)
        for line in _part_headers(part):
            chunks.append(line.encode("utf-8") + _CRLF)
        chunks.append(_CRLF)
        chunks.append(_part_content(part))
        chunks.append(_CRLF)
    chunks.append(delimiter + b"--" + _CRLF)
    return b"".join(chunks)


def parse_multipart(body: bytes, boundary: str = BOUNDARY) -> list[tuple[dict[str, str], bytes]]:
    """Split an encoded multipart body back into (headers, content) pairs.

    Used by the mock server and tests to inspect what went over the wire.
    """
    delimiter = f"--{boundary}".encode("ascii")
    parsed: list[tuple[dict[str, str], bytes]] = []
    for segment in body.split(delimiter)[1:]:
        if segment.startswith(b"--"):
            break
        segment = segment[len(_CRLF):] if segment.startswith(_CRLF) else segment
        if segment.endswith(_CRLF):
            segment = segment[: -len(_CRLF)]
        raw_headers, _, content = segment.partition(_CRLF + _CRLF)
        headers: dict[str, str] = {}
        for line in raw_headers.decode("utf-8").split("\r\n"):
            if ":" in line:
                key, value = line.split(":", 1)
                headers[key.strip()] = value.strip()
        parsed.append((headers, content))
    return parsed
