from __future__ import annotations

from dataclasses import dataclass

from ..settings import DocGraphSettings, settings as default_settings
from ..text import normalize_text


@dataclass
class ChunkingConfig:
    # token counts are approximated from characters
    max_tokens: int = 8000
    chars_per_token: int = 4
    overlap_chars: int = 0
    # prefer a newline boundary when one is this close to the cut
    boundary_window: int = 200

    @property
    def max_chars(self) -> int:
        return max(1, self.max_tokens * self.chars_per_token)

    @classmethod
    def from_settings(cls, s: DocGraphSettings = default_settings) -> "ChunkingConfig":
        return cls(
            max_tokens=s.chunk_max_tokens,
            chars_per_token=s.chars_per_token,
            overlap_chars=s.chunk_overlap_chars,
        )


def _sliding_window(text: str, *, target: int, overlap: int, window: int) -> list[str]:
    n = len(text)
    if n <= target:
        return [text]

    overlap = min(overlap, target - 1) if target > 1 else 0
    out: list[str] = []
    start = 0
    while start < n:
        end = min(n, start + target)
        if end < n:
            # try to end on a newline boundary
            nl = text.rfind("\n", start + 1, end)
            if nl != -1 and (end - nl) < window:
                end = nl
        seg = text[start:end].strip()
        if seg:
            out.append(seg)
        if end >= n:
            break
        start = max(start + 1, end - overlap)
    return out


def chunk_text(text: str, cfg: ChunkingConfig | None = None) -> list[str]:
    """Split text into extraction-sized chunks, in document order."""
    cfg = cfg or ChunkingConfig()
    text = normalize_text(text)
    if not text:
        return []
    return _sliding_window(text, target=cfg.max_chars, overlap=cfg.overlap_chars, window=cfg.boundary_window)
