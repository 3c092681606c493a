# User value: This file carries uploaded sketches, masks and references to the generation calls in one shape.
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

DEFAULT_MIME_TYPE = "image/png"


@dataclass(frozen=True)
class InlineImage:
    mime_type: str
    data: bytes

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: Optional[str] = None) -> "InlineImage":
        if not data:
            raise ValueError("Image payload is empty")
        return cls(mime_type=mime_type or sniff_mime_type(data), data=bytes(data))

    @classmethod
    def from_base64(cls, payload: str, mime_type: Optional[str] = None) -> "InlineImage":
        try:
            raw = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Image payload is not valid base64") from exc
        return cls.from_bytes(raw, mime_type)

    @classmethod
    def from_data_uri(cls, uri: str) -> "InlineImage":
        """
        Accepts `data:<mime>;base64,<payload>` or a bare base64 payload, the two
        forms the render tools pass around.
        """
        text = (uri or "").strip()
        if not text.startswith("data:"):
            return cls.from_base64(text)
        header, sep, payload = text.partition(",")
        if not sep or ";base64" not in header:
            raise ValueError("Only base64 data URIs are supported")
        mime_type = header[len("data:"):].split(";", 1)[0] or None
        return cls.from_base64(payload, mime_type)

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"


@dataclass(frozen=True)
class EditResult:
    image_url: str
    text: str = ""


def sniff_mime_type(data: bytes) -> str:
    try:
        with Image.open(BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError):
        return DEFAULT_MIME_TYPE
    return Image.MIME.get(fmt or "", DEFAULT_MIME_TYPE)


def to_data_uri(data: bytes, mime_type: Optional[str]) -> str:
    return InlineImage(mime_type=mime_type or DEFAULT_MIME_TYPE, data=data).to_data_uri()
