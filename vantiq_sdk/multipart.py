"""Multipart/form-data body for document uploads."""

from __future__ import annotations

import uuid
from typing import BinaryIO

import aiohttp

FORM_FIELD_NAME = "defaultName"


def build_upload_body(
    fileobj: BinaryIO, content_type: str, document_path: str
) -> aiohttp.MultipartWriter:
    """Wrap an open file in a single-part form-data writer.

    The file is streamed by aiohttp when the request is sent, never read
    into memory here. Each call uses a fresh boundary.
    """
    writer = aiohttp.MultipartWriter("form-data", boundary=uuid.uuid4().hex)
    part = writer.append(fileobj, {"Content-Type": content_type})
    part.set_content_disposition(
        "form-data",
        quote_fields=False,
        name=FORM_FIELD_NAME,
        filename=document_path,
    )
    return writer
