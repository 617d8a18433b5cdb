"""
Notes Sanitizer

Free-text notes come from users and from the receipt model.
They are stored as plain text, so anything that looks like markup
is stripped before a note is validated or persisted.

Order matters:
1. <script> blocks go first, body included
2. every remaining tag-like substring
3. entity references (&amp;, &#x3c; ...)
4. surrounding whitespace

Never raises - malformed markup degrades to best-effort plain text.
"""

import re
from typing import Optional

_SCRIPT_BLOCK = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_ENTITY = re.compile(r"&[^;]+;")


def sanitize(text: Optional[str]) -> Optional[str]:
    """
    Strip HTML/script content from a notes value.

    Returns None for None, empty input, or input that was nothing but markup.
    """
    if not text:
        return None

    cleaned = _SCRIPT_BLOCK.sub("", text)
    cleaned = _TAG.sub("", cleaned)
    cleaned = _ENTITY.sub("", cleaned)
    cleaned = cleaned.strip()

    return cleaned or None
