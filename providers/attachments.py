"""Attachment reading and per-vendor content-block encoding."""

import base64
import copy
import logging
from dataclasses import dataclass
from enum import Enum

from .models import Attachment, AttachmentType

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MEDIA_TYPE = "image/jpeg"

# Leading characters of the base64 encoding of each format's magic bytes
_IMAGE_SIGNATURES = (
    ("/9j/", "image/jpeg"),   # FF D8 FF
    ("iVBOR", "image/png"),   # 89 50 4E 47
    ("R0lG", "image/gif"),    # 47 49 46 38
    ("UklGR", "image/webp"),  # 52 49 46 46
)

_RESIZED_MARKERS = ("_resized", "resized.jpg", "resized2.jpg")

EPHEMERAL_CACHE_CONTROL = {"type": "ephemeral"}


# ── Reading ───────────────────────────────────────────────────────────────────


def _read_bytes(attachment: Attachment, expected: AttachmentType) -> bytes:
    if attachment.type is not expected:
        raise ValueError(f"Attachment {attachment.original_name!r} is not a {expected.value} attachment")
    with open(attachment.path, "rb") as fh:
        return fh.read()


def read_text_attachment(attachment: Attachment) -> str:
    return _read_bytes(attachment, AttachmentType.TEXT).decode("utf-8", errors="replace")


def read_webpage_attachment(attachment: Attachment) -> str:
    return _read_bytes(attachment, AttachmentType.WEBPAGE).decode("utf-8", errors="replace")


def read_image_attachment(attachment: Attachment) -> str:
    """Return the image as base64 text."""
    return base64.b64encode(_read_bytes(attachment, AttachmentType.IMAGE)).decode("ascii")


def read_pdf_attachment(attachment: Attachment) -> str:
    """Return the PDF as base64 text."""
    return base64.b64encode(_read_bytes(attachment, AttachmentType.PDF)).decode("ascii")


def encode_text_attachment(attachment: Attachment) -> str:
    return (
        f'<attachment name="{attachment.original_name}">\n'
        f"{read_text_attachment(attachment)}\n</attachment>\n\n"
    )


def encode_webpage_attachment(attachment: Attachment) -> str:
    return (
        f'<attachment url="{attachment.original_name}">\n'
        f"{read_webpage_attachment(attachment)}\n</attachment>\n\n"
    )


def attachment_missing_flag(attachment: Attachment) -> str:
    """Placeholder inlined when a vendor cannot accept an attachment kind."""
    kind = attachment.type.value if isinstance(attachment.type, AttachmentType) else str(attachment.type)
    return (
        f'<attachment name="{attachment.original_name}" type="{kind}">\n'
        "[This attachment type is not supported by the model. Respond anyway if you can.]\n"
        "</attachment>\n\n"
    )


def detect_image_media_type(data: str, path: str = "") -> str:
    """Sniff the media type from base64 image data.

    Resized copies are always re-encoded as JPEG whatever their extension.
    """
    if any(marker in path for marker in _RESIZED_MARKERS):
        return DEFAULT_IMAGE_MEDIA_TYPE
    for prefix, media_type in _IMAGE_SIGNATURES:
        if data.startswith(prefix):
            return media_type
    return DEFAULT_IMAGE_MEDIA_TYPE


# ── Encoding ──────────────────────────────────────────────────────────────────


class Dialect(Enum):
    ANTHROPIC = "anthropic"                # Messages API content blocks
    RESPONSES = "responses"                # OpenAI Responses API input items
    CHAT_COMPLETIONS = "chat_completions"  # OpenAI Chat Completions parts


@dataclass(frozen=True)
class VendorCapabilities:
    dialect: Dialect
    images: bool = True
    pdfs: bool = False
    functions: bool = True


def _anthropic_document(source: dict, title: str) -> dict:
    return {
        "type": "document",
        "source": source,
        "title": title,
        "citations": {"enabled": False},
    }


def _encode_anthropic(attachment: Attachment) -> dict:
    if attachment.type is AttachmentType.TEXT:
        data = read_text_attachment(attachment)
    elif attachment.type is AttachmentType.WEBPAGE:
        data = read_webpage_attachment(attachment)
    elif attachment.type is AttachmentType.IMAGE:
        data = read_image_attachment(attachment)
        media_type = detect_image_media_type(data, attachment.path)
        logger.debug("Image %s detected as %s", attachment.path, media_type)
        return {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}
    else:
        return _anthropic_document(
            {"type": "base64", "media_type": "application/pdf", "data": read_pdf_attachment(attachment)},
            attachment.original_name,
        )
    return _anthropic_document(
        {"type": "text", "media_type": "text/plain", "data": data},
        attachment.original_name,
    )


def _encode_responses(attachment: Attachment) -> dict:
    if attachment.type is AttachmentType.IMAGE:
        data = read_image_attachment(attachment)
        media_type = detect_image_media_type(data, attachment.path)
        return {"type": "input_image", "image_url": f"data:{media_type};base64,{data}", "detail": "auto"}
    return {
        "type": "input_file",
        "filename": attachment.original_name,
        "file_data": f"data:application/pdf;base64,{read_pdf_attachment(attachment)}",
    }


def _encode_chat_completions(attachment: Attachment) -> dict:
    if attachment.type is AttachmentType.IMAGE:
        data = read_image_attachment(attachment)
        media_type = detect_image_media_type(data, attachment.path)
        return {"type": "image_url", "image_url": {"url": f"data:{media_type};base64,{data}"}}
    return {
        "type": "file",
        "file": {
            "filename": attachment.original_name,
            "file_data": f"data:application/pdf;base64,{read_pdf_attachment(attachment)}",
        },
    }


def encode_attachment(attachment: Attachment, capabilities: VendorCapabilities) -> dict | str:
    """Encode one attachment for a vendor.

    Returns:
        A content block (dict) in the vendor's dialect, or a string to be
        inlined into the message text. Text and webpage attachments inline as
        strings outside the Anthropic dialect; unsupported kinds become a
        placeholder string instead of an error.
    """
    try:
        kind = AttachmentType(attachment.type)
    except ValueError:
        logger.warning("Unhandled attachment type %r", attachment.type)
        return attachment_missing_flag(attachment)
    if kind is not attachment.type:
        attachment = Attachment(kind, attachment.path, attachment.original_name)

    if kind is AttachmentType.IMAGE and not capabilities.images:
        return attachment_missing_flag(attachment)
    if kind is AttachmentType.PDF and not capabilities.pdfs:
        return attachment_missing_flag(attachment)

    if capabilities.dialect is Dialect.ANTHROPIC:
        return _encode_anthropic(attachment)
    if kind is AttachmentType.TEXT:
        return encode_text_attachment(attachment)
    if kind is AttachmentType.WEBPAGE:
        return encode_webpage_attachment(attachment)
    if capabilities.dialect is Dialect.RESPONSES:
        return _encode_responses(attachment)
    return _encode_chat_completions(attachment)


# ── Cache boundary ────────────────────────────────────────────────────────────


@dataclass
class EncodedMessage:
    """A vendor message plus whether it carried any attachment blocks."""
    role: str
    content: list[dict]
    has_attachments: bool = False


def apply_cache_boundary(messages: list[EncodedMessage]) -> list[dict]:
    """Mark the newest attachment-bearing message as the prompt-cache boundary.

    Every earlier ``cache_control`` annotation is removed so the boundary
    only ever moves forward. Input messages are not mutated.

    Returns:
        Plain ``{"role", "content"}`` dicts ready to send.
    """
    last_index = -1
    for i in range(len(messages) - 1, -1, -1):
        if messages[i].has_attachments:
            last_index = i
            break

    output = []
    for i, message in enumerate(messages):
        blocks = [copy.copy(block) for block in message.content]
        for block in blocks:
            block.pop("cache_control", None)
        if i == last_index and blocks:
            blocks[-1]["cache_control"] = dict(EPHEMERAL_CACHE_CONTROL)
        output.append({"role": message.role, "content": blocks})
    return output
