"""Tests for chunker.split_text and calculate_optimal_chunk_size."""

import pytest
from pydantic import ValidationError

from ingestly.models.options import ChunkingOptions
from ingestly.services.chunker import calculate_optimal_chunk_size, split_text


def _paragraphs(count: int = 10, words: int = 41) -> str:
    # "p0w00 p0w01 ..." : 41 five-letter words make a 245-character paragraph
    return "\n\n".join(
        " ".join(f"p{k}w{j:02d}" for j in range(words)) for k in range(count)
    )


class TestSplitTextBasics:
    def test_blank_text_gives_no_chunks(self):
        assert split_text("") == []
        assert split_text("   \n\n \t ") == []

    def test_short_text_is_single_cleaned_chunk(self):
        assert split_text("  Hello    world \n\n\n\n Bye  ") == ["Hello world\n\nBye"]

    def test_invalid_options_are_rejected(self):
        with pytest.raises(ValidationError):
            ChunkingOptions(chunk_size=100, chunk_overlap=100)
        with pytest.raises(ValidationError):
            ChunkingOptions(chunk_size=100, chunk_overlap=10, min_chunk_size=200)


class TestParagraphChunking:
    def test_ten_paragraph_document(self):
        text = _paragraphs()
        assert len(text) == 2468

        chunks = split_text(text)

        assert [len(c) for c in chunks] == [986, 937, 937]
        # each chunk opens with the word-aligned tail of the previous one
        assert chunks[1].startswith(chunks[0][-197:])
        assert chunks[2].startswith(chunks[1][-197:])

    def test_chunks_respect_size_bounds(self):
        options = ChunkingOptions()
        chunks = split_text(_paragraphs(25), options)
        assert len(chunks) > 1
        for chunk in chunks:
            assert len(chunk) <= options.chunk_size
        for chunk in chunks[:-1]:
            assert len(chunk) >= options.min_chunk_size

    def test_every_word_is_covered(self):
        text = _paragraphs(25)
        chunks = split_text(text)
        covered = set(" ".join(chunks).split())
        assert set(text.split()) <= covered

    def test_overlap_never_exceeds_configured_size(self):
        options = ChunkingOptions(chunk_size=300, chunk_overlap=50, min_chunk_size=50)
        chunks = split_text(_paragraphs(8, words=20), options)
        for previous, current in zip(chunks, chunks[1:]):
            shared = 0
            for size in range(1, min(len(previous), len(current)) + 1):
                if previous.endswith(current[:size]):
                    shared = size
            assert shared <= options.chunk_overlap

    def test_no_overlap(self):
        options = ChunkingOptions(chunk_size=300, chunk_overlap=0, min_chunk_size=50)
        chunks = split_text(_paragraphs(4), options)
        assert chunks == [_paragraphs(4).split("\n\n")[k] for k in range(4)]


class TestSeparatorChunking:
    def test_custom_separator(self):
        lines = [f"Line {i:02d} of the separator mode sample text" for i in range(30)]
        options = ChunkingOptions(
            chunk_size=200,
            chunk_overlap=40,
            min_chunk_size=50,
            separator="|",
            preserve_paragraphs=False,
        )
        chunks = split_text("|".join(lines), options)
        assert len(chunks) > 1
        assert all(len(chunk) <= 200 for chunk in chunks)
        joined = " ".join(chunks)
        for line in lines:
            assert line in joined


class TestOversizedUnits:
    def test_long_sentences_are_split(self):
        sentence = "This sentence is about forty characters. "
        text = sentence * 80
        chunks = split_text(text)
        assert all(len(chunk) <= 1000 for chunk in chunks)
        assert all(chunk.endswith(".") for chunk in chunks)

    def test_short_leading_sentence_is_not_a_chunk_of_its_own(self):
        text = "Tiny intro here. " + "word " * 198 + ". " + "more " * 40 + "."
        chunks = split_text(text)
        assert len(chunks) > 1
        assert all(100 <= len(chunk) <= 1000 for chunk in chunks[:-1])
        assert len(chunks[-1]) <= 1000
        assert " ".join(chunks).split() == text.split()

    def test_unbroken_string_is_sliced(self):
        text = "a" * 2500
        chunks = split_text(text)
        assert [len(c) for c in chunks] == [1000, 1000, 500]
        assert "".join(chunks) == text


class TestCalculateOptimalChunkSize:
    def test_default_ratio(self):
        assert calculate_optimal_chunk_size(8192) == 32368

    def test_custom_ratio(self):
        assert calculate_optimal_chunk_size(600, avg_tokens_per_char=0.5) == 1000

    @pytest.mark.parametrize("max_tokens, ratio", [(100, 0.25), (50, 0.25), (1000, 0)])
    def test_invalid_input(self, max_tokens, ratio):
        with pytest.raises(ValueError):
            calculate_optimal_chunk_size(max_tokens, ratio)
