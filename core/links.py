"""Share-link helpers — pure functions, no I/O."""

from __future__ import annotations

_RAW_MARKER = "raw=1"


def normalize_link(share_link: str) -> str:
    """Turn a share link into a direct-download link.

    Appends the ``raw=1`` query marker, with ``&`` when the link already
    carries a query string and ``?`` otherwise. A link that already
    contains the marker is returned unchanged, so the function is
    idempotent::

        >>> normalize_link("https://www.dropbox.com/s/abc/x.mp3?dl=0")
        'https://www.dropbox.com/s/abc/x.mp3?dl=0&raw=1'
    """
    if _RAW_MARKER in share_link:
        return share_link
    if "?" in share_link:
        return f"{share_link}&{_RAW_MARKER}"
    return f"{share_link}?{_RAW_MARKER}"


def generate_track_name(order: int) -> str:
    """Default display name for a track registered without one."""
    return f"Track {order:03d}"
