"""Attachment handling shared by generation backends.

Text attachments are decoded and appended to the prompt so the model reads
them as context; image attachments are sent as separate image parts.
Audio and video attachments are not forwarded.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

from promptlab.schemas.prompt import Attachment

logger = logging.getLogger(__name__)

REFERENCE_FILES_HEADER = "\n\n# Reference Files Context (Auto-injected):\n"


def _data_uri_payload(data: str) -> str:
    """Strip a ``data:<mime>;base64,`` prefix if present."""
    if data.startswith("data:") and "," in data:
        return data.split(",", 1)[1]
    return data


def extract_text(attachment: Attachment) -> str | None:
    """Decode a text attachment; None for other types or undecodable data."""
    if attachment.type != "text":
        return None
    try:
        raw = base64.b64decode(_data_uri_payload(attachment.data), validate=False)
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        logger.warning(f"Failed to decode text attachment {attachment.name}: {e}")
        return None


def inject_text_attachments(prompt: str, attachments: list[Attachment]) -> str:
    """Append every decodable text attachment to ``prompt``."""
    blocks = []
    for attachment in attachments:
        text = extract_text(attachment)
        if text is not None:
            blocks.append(f"\n--- File: {attachment.name} ---\n{text}\n--- End of File ---\n")
    if not blocks:
        return prompt
    return prompt + REFERENCE_FILES_HEADER + "".join(blocks)


def image_parts(attachments: list[Attachment]) -> list[dict[str, Any]]:
    """OpenAI-style ``image_url`` content parts for image attachments."""
    parts = []
    for attachment in attachments:
        if attachment.type != "image":
            continue
        url = attachment.data
        if not url.startswith("data:"):
            url = f"data:{attachment.mime_type or 'image/png'};base64,{url}"
        parts.append({"type": "image_url", "image_url": {"url": url}})
    return parts


def user_content(text: str, attachments: list[Attachment]) -> str | list[dict[str, Any]]:
    """Build the content of a user message carrying ``attachments``.

    Plain text when there are no images, otherwise a list of content parts.
    """
    text = inject_text_attachments(text, attachments)
    images = image_parts(attachments)
    if not images:
        return text
    return [{"type": "text", "text": text}, *images]
