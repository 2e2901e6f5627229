"""Stable identity token for a logical song.

Hey future me - the stable_id is the ONE thing that survives every move, rename,
quality upgrade and relink. It's derived from the normalized ORIGINAL triple
(artist, title, album) and nothing else:

    stable_id = "song_" + md5(norm(artist) + "_" + norm(title) + "_" + norm(album))[:8]

norm() folds Unicode (NFKC), lowercases, trims and collapses inner whitespace, so
"  QUEEN ", "Queen" and "Ｑｕｅｅｎ" all produce the same token. md5 is used as a
fingerprint here, NOT for security.
"""

import hashlib
import re
import unicodedata

STABLE_ID_PREFIX = "song_"
STABLE_ID_HEX_LENGTH = 8

_WHITESPACE = re.compile(r"\s+")


def normalize_identity_text(value: str | None) -> str:
    """Normalize one identity component for hashing and comparison.

    Examples:
        >>> normalize_identity_text("  Bohemian   Rhapsody ")
        'bohemian rhapsody'
        >>> normalize_identity_text(None)
        ''
    """
    if not value:
        return ""
    folded = unicodedata.normalize("NFKC", value)
    return _WHITESPACE.sub(" ", folded).strip().lower()


def identity_key(artist: str | None, title: str | None, album: str | None) -> str:
    """Joined normalized triple, e.g. "queen_bohemian rhapsody_a night at the opera"."""
    return "_".join(
        (
            normalize_identity_text(artist),
            normalize_identity_text(title),
            normalize_identity_text(album),
        )
    )


def compute_stable_id(
    artist: str | None, title: str | None, album: str | None
) -> str:
    """Deterministic stable id for the (artist, title, album) triple."""
    digest = hashlib.md5(
        identity_key(artist, title, album).encode("utf-8"), usedforsecurity=False
    ).hexdigest()
    return f"{STABLE_ID_PREFIX}{digest[:STABLE_ID_HEX_LENGTH]}"


def is_stable_id(value: str) -> bool:
    """Check the token shape (prefix plus fixed-width lowercase hex)."""
    if not value.startswith(STABLE_ID_PREFIX):
        return False
    token = value[len(STABLE_ID_PREFIX) :]
    return len(token) == STABLE_ID_HEX_LENGTH and all(
        c in "0123456789abcdef" for c in token
    )
