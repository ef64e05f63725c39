# madmatch/app/services/slugify.py
import re
import secrets
import unicodedata

MAX_SLUG_LENGTH = 250
_DANISH_LETTERS = str.maketrans({"æ": "ae", "ø": "oe", "å": "aa", "Æ": "ae", "Ø": "oe", "Å": "aa"})


def slugify(text: str) -> str:
    """Turn a title into a slug: lowercase, no accents, hyphen separated."""
    t = text.translate(_DANISH_LETTERS)
    # remaining accents
    t = unicodedata.normalize("NFKD", t).encode("ascii", "ignore").decode("ascii")
    t = re.sub(r"[^a-zA-Z0-9]+", "-", t).strip("-").lower()
    return t[:MAX_SLUG_LENGTH].rstrip("-") or "recipe"


def unique_slug(base: str) -> str:
    """Append a short random suffix to avoid collisions."""
    return f"{base}-{secrets.token_hex(3)}"  # e.g. kylling-i-karry-a1b2c3
