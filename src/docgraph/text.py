from __future__ import annotations

import hashlib
import re
import unicodedata
from typing import Iterable

_WHITESPACE_RE = re.compile(r"\s+")
_NON_KEY_RE = re.compile(r"[^A-Za-z0-9_]")

NODE_ID_PREFIX = "entity"
COMMUNITY_KEY_PREFIX = "community-"
_LABEL_DIGEST_CHARS = 10
_MEMBER_DIGEST_CHARS = 16


def normalize_text(text: str) -> str:
    """Normalization used before chunking.

    Keeps line structure but removes irrelevant variance.
    """
    if not text:
        return ""
    text = unicodedata.normalize("NFKC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.strip()


def label_key(label: str) -> str:
    """Case/whitespace-insensitive key used to dedup labels within a batch."""
    return _WHITESPACE_RE.sub(" ", str(label or "")).strip().lower()


def normalize_label(label: str) -> str:
    """Store key derived from a label.

    Pure function of the label: "Acme Corp", "acme corp" and " ACME-CORP "
    all map to ``acme_corp``. Letters and digits outside ASCII cannot be
    kept in a store key, so labels carrying them get a short digest of
    :func:`label_key` appended: "Москва" and "Берлин" stay distinct while
    "Москва" and " москва " still share an id.
    """
    raw = str(label or "").strip()
    s = _NON_KEY_RE.sub("_", raw).lower()
    if any(ch.isalnum() and not ch.isascii() for ch in raw):
        digest = hashlib.sha1(label_key(raw).encode("utf-8")).hexdigest()[:_LABEL_DIGEST_CHARS]
        return f"{s}_{digest}"
    return s or "unknown"


def node_id_for_label(label: str) -> str:
    return f"{NODE_ID_PREFIX}:{normalize_label(label)}"


def community_id_for_members(member_ids: Iterable[str]) -> str:
    """Id of the community formed by exactly these members.

    Order-insensitive, so re-detecting the same cluster lands on the same
    record no matter what label the summary comes back with.
    """
    joined = "\n".join(sorted(set(member_ids)))
    digest = hashlib.sha1(joined.encode("utf-8")).hexdigest()[:_MEMBER_DIGEST_CHARS]
    # "-" never survives normalize_label, so community keys cannot collide with entity keys
    return f"{NODE_ID_PREFIX}:{COMMUNITY_KEY_PREFIX}{digest}"


def is_community_id(node_id: str) -> bool:
    return split_id(node_id)[1].startswith(COMMUNITY_KEY_PREFIX)


def normalize_edge_type(rel_type: str) -> str:
    """Edge-table name for a relationship type: WORKS AT -> WORKS_AT."""
    s = _WHITESPACE_RE.sub("_", str(rel_type or "").strip())
    s = _NON_KEY_RE.sub("_", s).upper()
    if not s:
        return "RELATED_TO"
    if not s[0].isalpha():
        s = f"REL_{s}"
    return s


def split_id(record_id: str) -> tuple[str, str]:
    """Split ``table:key`` (or the backend-native ``table/key``) into its parts."""
    for sep in (":", "/"):
        if sep in record_id:
            table, key = record_id.split(sep, 1)
            return table, key
    return "", record_id


def join_id(table: str, key: str) -> str:
    return f"{table}:{key}"
