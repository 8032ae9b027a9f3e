"""Repository identity: URL normalization and URL-derived names."""

from typing import Optional

DEFAULT_HOST = "github.com"


def normalize_remote_url(url: str) -> str:
    """
    Normalize a remote URL so that every spelling of one repository compares equal.

    Trims whitespace, drops a trailing ``.git``, rewrites the SSH form
    ``git@host:owner/repo`` to ``https://host/owner/repo`` and lower-cases the
    result. Applying it twice gives the same value as applying it once.
    """
    normalized = url.strip().lower()
    while True:
        trimmed = normalized.rstrip("/").removesuffix(".git")
        if trimmed == normalized:
            break
        normalized = trimmed
    if normalized.startswith("git@") and ":" in normalized:
        host, path = normalized[len("git@"):].split(":", 1)
        normalized = f"https://{host}/{path}"
    elif normalized.startswith("ssh://git@"):
        normalized = "https://" + normalized[len("ssh://git@"):]
    return normalized


def url_path(url: str) -> str:
    """Return ``host/owner/repo`` for a remote URL."""
    normalized = normalize_remote_url(url)
    for scheme in ("https://", "http://"):
        if normalized.startswith(scheme):
            return normalized[len(scheme):]
    return normalized


def clone_path_for_url(root: str, url: str) -> str:
    """Where a clone of ``url`` lives under the canonical ``{root}/<host>/<owner>/<repo>`` layout."""
    return f"{root.rstrip('/')}/{url_path(url)}"


def parse_owner_from_url(url: str) -> Optional[str]:
    """Extract the owner segment from an SSH or HTTP(S) remote URL."""
    url = url.strip()
    if url.startswith("git@"):
        parts = url.split(":")
        if len(parts) == 2:
            segments = parts[1].removesuffix(".git").split("/")
            if segments and segments[0]:
                return segments[0]
        return None

    if url.startswith("http"):
        trimmed = url.removeprefix("https://").removeprefix("http://")
        segments = trimmed.split("/")
        if len(segments) >= 2 and segments[1]:
            return segments[1]

    return None
