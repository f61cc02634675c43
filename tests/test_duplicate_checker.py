from datetime import date

import pytest

from app.services.duplicate_checker import (
    find_duplicate_expense,
    find_duplicate_expenses,
    is_similar_supplier,
)
from app.services.similarity import extract_tokens, normalize_name, similarity, token_overlap


class TestSimilarity:
    def test_normalize_strips_legal_suffix(self):
        assert normalize_name("  Spotify AB ") == "spotify"
        assert normalize_name("Patagonia, Inc.") == "patagonia"

    def test_normalize_keeps_names_ending_in_suffix_letters(self):
        assert normalize_name("Atlas") == "atlas"

    def test_similarity_bounds(self):
        assert similarity("", "") == 1.0
        assert similarity("abc", "abc") == 1.0
        assert similarity("abc", "xyz") == 0.0

    def test_token_overlap_ignores_word_order(self):
        assert token_overlap("Symfoniker Göteborgs", "Göteborgs Symfoniker") == 1.0

    def test_token_overlap_without_significant_tokens(self):
        assert token_overlap("AB", "of the") == 0.0

    def test_token_similarity_cut_is_inclusive(self):
        # One substitution in five characters is exactly 0.8
        assert token_overlap("Kalle", "Kalla") == 1.0
        assert token_overlap("Kalle", "Kolla") == 0.0

    def test_punctuation_is_deleted_inside_tokens(self):
        assert extract_tokens("O'Brien & Co.") == ["obrien"]
        assert extract_tokens("Jazz-klubben, Malmö") == ["jazzklubben", "malmö"]


class TestSupplierMatching:
    def test_exact_after_normalization(self):
        assert is_similar_supplier("Spotify AB", "spotify") == (True, "exact")

    def test_contains(self):
        assert is_similar_supplier("Spotify Premium", "Spotify") == (True, "contains")

    def test_fuzzy_at_default_threshold(self):
        assert is_similar_supplier("Spotfy", "Spotify") == (True, "fuzzy")

    def test_fuzzy_rejected_at_strict_threshold(self):
        assert is_similar_supplier("Spotfy", "Spotify", threshold=0.99) == (False, None)

    def test_unrelated_names(self):
        assert is_similar_supplier("ICA", "SAS") == (False, None)

    def test_zero_threshold_accepts_anything(self):
        is_similar, match_type = is_similar_supplier("ICA", "SAS", threshold=0)
        assert is_similar is True
        assert match_type == "fuzzy"


class TestFindDuplicate:
    @pytest.fixture
    def existing(self):
        return [
            {"id": 1, "date": "2024-03-15", "supplier": "Spotify AB", "amount": 119.0},
            {"id": 2, "date": "2024-03-15", "supplier": "SJ", "amount": 450.0},
            {"id": 3, "date": "2024-03-16", "supplier": "ICA Maxi", "amount": 89.5},
        ]

    def test_match_on_same_date_and_amount(self, existing):
        result = find_duplicate_expense(
            {"date": "2024-03-15", "supplier": "spotify", "amount": 119.0}, existing
        )
        assert result["is_duplicate"] is True
        assert result["existing_expense"]["id"] == 1
        assert result["match_type"] == "exact"

    def test_date_objects_compare_with_strings(self, existing):
        result = find_duplicate_expense(
            {"date": date(2024, 3, 16), "supplier": "ICA", "amount": 89.5}, existing
        )
        assert result["is_duplicate"] is True
        assert result["match_type"] == "contains"

    def test_amount_prefilter_applies_before_names(self, existing):
        # Identical supplier, but the amount is off by more than a cent
        result = find_duplicate_expense(
            {"date": "2024-03-15", "supplier": "Spotify AB", "amount": 119.02}, existing
        )
        assert result == {"is_duplicate": False, "existing_expense": None, "match_type": None}

    def test_date_prefilter_applies_before_names(self, existing):
        result = find_duplicate_expense(
            {"date": "2024-03-17", "supplier": "Spotify AB", "amount": 119.0}, existing,
            threshold=0,
        )
        assert result["is_duplicate"] is False

    def test_batch_results_carry_index(self, existing):
        results = find_duplicate_expenses(
            [
                {"date": "2024-03-15", "supplier": "SJ AB", "amount": 450.0},
                {"date": "2024-03-15", "supplier": "Taxi Stockholm", "amount": 450.0},
            ],
            existing,
        )
        assert [r["index"] for r in results] == [0, 1]
        assert results[0]["is_duplicate"] is True
        assert results[1]["is_duplicate"] is False


class TestAmountTolerance:
    @pytest.fixture
    def existing(self):
        return [{"id": 1, "date": "2024-03-15", "supplier": "Spotify AB", "amount": 119.0}]

    def test_under_one_cent_is_duplicate(self, existing):
        result = find_duplicate_expense(
            {"date": "2024-03-15", "supplier": "Spotify", "amount": 119.009}, existing
        )
        assert result["is_duplicate"] is True

    def test_one_cent_is_not_duplicate(self, existing):
        result = find_duplicate_expense(
            {"date": "2024-03-15", "supplier": "Spotify", "amount": 119.01}, existing
        )
        assert result["is_duplicate"] is False
