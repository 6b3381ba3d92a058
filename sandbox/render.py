"""Render-mode detection and the HTML document wrapped around DOM code."""

from __future__ import annotations

import re

RENDER_PATTERNS = ("document.", "window.", "$(", "jQuery(", "react-dom")

JQUERY_URL = "https://code.jquery.com/jquery-3.7.1.min.js"

_JQUERY_USE_RE = re.compile(r"(?<![\w$])(?:\$|jQuery)\s*[(.]")
_SCRIPT_CLOSE_RE = re.compile(r"</script", re.I)

_DOCUMENT_HEAD = """\
<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
{scripts}</head>
<body>
<div id="root"></div>
<div id="app"></div>
<script>
"""

_DOCUMENT_TAIL = """
</script>
</body>
</html>
"""


def wants_render(code: str, patterns: tuple[str, ...] = RENDER_PATTERNS) -> bool:
    return any(pattern in code for pattern in patterns)


def uses_jquery(code: str) -> bool:
    return bool(_JQUERY_USE_RE.search(code))


def jquery_tag() -> str:
    return f'<script src="{JQUERY_URL}"></script>'


def document_shell(code: str) -> tuple[str, str]:
    """Head and tail of the page the code is embedded into; jQuery is loaded when the code uses it."""
    scripts = jquery_tag() + "\n" if uses_jquery(code) and "jquery" not in code.lower() else ""
    return _DOCUMENT_HEAD.format(scripts=scripts), _DOCUMENT_TAIL


def escape_script(code: str) -> str:
    return _SCRIPT_CLOSE_RE.sub(r"<\\/script", code)


def render_document(code: str) -> str:
    head, tail = document_shell(code)
    return head + escape_script(code) + tail
