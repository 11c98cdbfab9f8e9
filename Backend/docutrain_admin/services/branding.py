"""Owner (tenant) branding updates."""
import re
from typing import Any, Dict

from docutrain_admin.core.errors import ValidationError

ACCENT_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")

# Text fields where an empty string means "clear it".
NULLABLE_TEXT_FIELDS = ("logo_url", "intro_message", "default_cover", "custom_domain", "description")


def validate_accent_color(value: str) -> str:
    if not isinstance(value, str) or not ACCENT_COLOR_PATTERN.match(value.strip()):
        raise ValidationError("accent_color must be a hex color like #1a2b3c")
    return value.strip().lower()


def prepare_owner_update(fields: Dict[str, Any]) -> Dict[str, Any]:
    updates = dict(fields)
    for key in NULLABLE_TEXT_FIELDS:
        if key in updates and isinstance(updates[key], str):
            updates[key] = updates[key].strip() or None

    metadata = updates.get("metadata")
    if isinstance(metadata, dict) and metadata.get("accent_color") is not None:
        updates["metadata"] = {**metadata, "accent_color": validate_accent_color(metadata["accent_color"])}
    return updates
