import re
from typing import Optional
from urllib.parse import urlparse

from core.vocabulary import GENERIC_FALLBACK_IMAGE, SOURCE_FALLBACK_IMAGES

_IMG_SRC = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)


def first_embedded_image(html: Optional[str]) -> Optional[str]:
    """First <img src> found in an HTML body, if any."""
    if not html:
        return None
    match = _IMG_SRC.search(html)
    return match.group(1).strip() if match else None


def source_fallback_image(source_name: Optional[str]) -> Optional[str]:
    lowered = (source_name or "").lower()
    for needle, image in SOURCE_FALLBACK_IMAGES:
        if needle in lowered:
            return image
    return None


def _usable(url: Optional[str]) -> bool:
    if not url or not url.strip():
        return False
    parsed = urlparse(url.strip())
    # Site-relative placeholder paths are allowed.
    return bool(parsed.scheme in ("http", "https") and parsed.netloc) or url.startswith("/")


def resolve_image(candidate: Optional[str], source_name: Optional[str]) -> str:
    """
    Never returns an empty string.
    candidate -> source-specific placeholder -> generic placeholder.
    """
    if _usable(candidate):
        return candidate.strip()
    return source_fallback_image(source_name) or GENERIC_FALLBACK_IMAGE
