from docgraph.ingestion.chunking import ChunkingConfig, chunk_text


def test_defaults_bound_chunks_at_32000_chars():
    cfg = ChunkingConfig()
    assert cfg.max_chars == 8000 * 4


def test_short_text_is_not_split():
    assert chunk_text("Alice works at Acme Corp.") == ["Alice works at Acme Corp."]


def test_empty_text_has_no_chunks():
    assert chunk_text("   \n ") == []


def test_prefers_newline_boundaries():
    cfg = ChunkingConfig(max_tokens=5, chars_per_token=2)
    assert chunk_text("aaaa\nbbbb\ncccc", cfg) == ["aaaa\nbbbb", "cccc"]


def test_hard_split_without_newlines():
    cfg = ChunkingConfig(max_tokens=5, chars_per_token=2)
    chunks = chunk_text("x" * 25, cfg)
    assert [len(c) for c in chunks] == [10, 10, 5]


def test_overlap_repeats_the_tail():
    cfg = ChunkingConfig(max_tokens=5, chars_per_token=2, overlap_chars=4)
    assert chunk_text("abcdefghijklmnop", cfg) == ["abcdefghij", "ghijklmnop"]


def test_chunks_keep_document_order():
    cfg = ChunkingConfig(max_tokens=1, chars_per_token=10)
    assert chunk_text("unit 1\nunit 2\nunit 3", cfg) == ["unit 1", "unit 2", "unit 3"]
