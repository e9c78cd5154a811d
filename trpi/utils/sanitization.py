from typing import Any, Optional

import bleach


def sanitize_string(value: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """
    Strip HTML from free-text input (notes, bios, reasons) and trim whitespace.
    Returns None if input is None.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    cleaned = bleach.clean(value, tags=[], attributes={}, strip=True).strip()
    if max_length is not None and len(cleaned) > max_length:
        raise ValueError(f"Input exceeds maximum length of {max_length} characters")
    return cleaned


def sanitize_list(values: Optional[list[Any]]) -> list[Any]:
    """Sanitize every string in a flat list, dropping the ones left empty"""
    if not values:
        return []
    cleaned = []
    for item in values:
        if isinstance(item, str):
            item = sanitize_string(item)
            if not item:
                continue
        cleaned.append(item)
    return cleaned
