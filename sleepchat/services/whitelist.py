"""Whitelist parsing and matching.

Entries are free-form strings; each one may be a platform user id
(``usr_...``) or a display name. Matching ignores case.
"""

from collections.abc import Iterable


def normalize_entries(entries: Iterable[str]) -> list[str]:
    """Trim entries, drop blanks and case-insensitive duplicates, keep order."""
    seen: set[str] = set()
    result = []
    for entry in entries:
        cleaned = entry.strip() if isinstance(entry, str) else ""
        if not cleaned or cleaned.casefold() in seen:
            continue
        seen.add(cleaned.casefold())
        result.append(cleaned)
    return result


def parse_whitelist(text: str) -> list[str]:
    """Parse newline-separated whitelist text as typed into the settings box."""
    return normalize_entries(text.split("\n"))


def merge_entries(existing: Iterable[str], additions: Iterable[str]) -> tuple[list[str], list[str]]:
    """Append ``additions`` not already present. Returns (merged, newly_added)."""
    merged = normalize_entries(existing)
    known = {entry.casefold() for entry in merged}
    added = []
    for entry in normalize_entries(additions):
        if entry.casefold() not in known:
            known.add(entry.casefold())
            added.append(entry)
    return merged + added, added


def is_whitelisted(entries: Iterable[str], sender_id: str | None, display_name: str | None) -> bool:
    candidates = {value.strip().casefold() for value in (sender_id, display_name) if value}
    if not candidates:
        return False
    return any(entry.strip().casefold() in candidates for entry in entries if entry)
