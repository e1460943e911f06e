"""
Template Renderer
Fills {placeholder} / {{placeholder}} tokens in notification bodies
"""

import re
from typing import Any, Mapping, Optional

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}|\{(\w+)\}")

PREVIEW_MARKER = "[...]"

# Demo values shown in the template editor preview
PREVIEW_VARIABLES = {
    "firstName": "Dana",
    "fullName": "Dana Levi",
    "petName": "Rexy",
    "checkInDate": "01/08/2025",
    "checkOutDate": "05/08/2025",
    "checkInTime": "10:00",
    "roomName": "Garden Suite",
    "bookingId": "1042",
}


def _substitute(body: Optional[str], variables: Optional[Mapping[str, Any]], missing: Optional[str]) -> str:
    variables = variables or {}

    def replace(match: re.Match) -> str:
        key = match.group(1) or match.group(2)
        if key not in variables:
            return match.group(0) if missing is None else missing
        value = variables[key]
        return "" if value is None else str(value)

    # Single pass, so text coming from a value is never scanned again
    return PLACEHOLDER.sub(replace, body or "")


def render_template(body: Optional[str], variables: Optional[Mapping[str, Any]]) -> str:
    """
    Substitute every known variable into the body.

    Both ``{{key}}`` and ``{key}`` are accepted. Placeholders with no matching
    variable are left exactly as written.
    """
    return _substitute(body, variables, None)


def render_preview(body: Optional[str], variables: Optional[Mapping[str, Any]] = None) -> str:
    """Render for display: unknown placeholders become a visible marker"""
    return _substitute(body, PREVIEW_VARIABLES if variables is None else variables, PREVIEW_MARKER)
