"""Unit tests for enrollment code generation."""

from agora.kernel.identity.enrollment import (
    CODE_ALPHABET,
    generate_code,
    has_weak_pattern,
    normalize_code,
)


class TestCodeGeneration:
    """Tests for generate_code."""

    def test_default_length(self):
        assert len(generate_code()) == 12

    def test_custom_length(self):
        assert len(generate_code(8)) == 8

    def test_alphabet_excludes_ambiguous_characters(self):
        for ch in "O01IL":
            assert ch not in CODE_ALPHABET

    def test_codes_use_alphabet_only(self):
        for _ in range(50):
            assert set(generate_code()) <= set(CODE_ALPHABET)

    def test_generated_codes_have_no_weak_patterns(self):
        for _ in range(200):
            assert not has_weak_pattern(generate_code())

    def test_codes_are_unique(self):
        codes = {generate_code() for _ in range(200)}
        assert len(codes) == 200


class TestWeakPatterns:
    """Tests for has_weak_pattern."""

    def test_repeated_characters(self):
        assert has_weak_pattern("K7AAAPQ2")

    def test_ascending_run(self):
        assert has_weak_pattern("XXABCY")
        assert has_weak_pattern("Q234Z")

    def test_two_repeats_are_fine(self):
        assert not has_weak_pattern("KK7MPQ2X")

    def test_descending_run_is_fine(self):
        assert not has_weak_pattern("CBA9")


class TestNormalizeCode:
    def test_strips_and_uppercases(self):
        assert normalize_code("  k7mpq2xrtw9c\n") == "K7MPQ2XRTW9C"
