"""Tests for NPS classification and aggregation."""

import pytest

from customer_insights.scoring.nps import calculate_nps, classify_nps, normalize_rating


class TestClassifyNPS:
    @pytest.mark.parametrize(
        "rating,expected",
        [(10, "promoter"), (9, "promoter"), (8, "passive"), (7, "passive"), (6, "detractor"), (0, "detractor")],
    )
    def test_ten_point_scale(self, rating, expected):
        assert classify_nps(rating, 10) == expected

    @pytest.mark.parametrize(
        "rating,expected",
        [(5, "promoter"), (4, "passive"), (3, "detractor"), (1, "detractor")],
    )
    def test_five_point_scale_is_doubled(self, rating, expected):
        """A 5 counts as 10, a 4 as 8."""
        assert classify_nps(rating, 5) == expected


class TestNormalizeRating:
    def test_five_point(self):
        assert normalize_rating(4, 5) == 8.0

    def test_unsupported_scale(self):
        with pytest.raises(ValueError, match="scale must be one of"):
            normalize_rating(5, 7)

    @pytest.mark.parametrize("rating,scale", [(11, 10), (-1, 10), (6, 5)])
    def test_out_of_range(self, rating, scale):
        with pytest.raises(ValueError, match="between 0 and"):
            normalize_rating(rating, scale)


class TestCalculateNPS:
    def test_balanced_ratings(self):
        summary = calculate_nps([10, 9, 8, 7, 6, 0])
        assert summary.score == 0
        assert (summary.promoters, summary.passives, summary.detractors) == (2, 2, 2)
        assert summary.total == 6

    def test_positive_score(self):
        assert calculate_nps([10, 10, 10, 5]).score == 50

    def test_negative_score_rounds(self):
        """-33.33 rounds to -33."""
        assert calculate_nps([9, 6, 6]).score == -33

    def test_all_promoters(self):
        assert calculate_nps([9, 10]).score == 100

    def test_no_ratings(self):
        summary = calculate_nps([])
        assert summary.score == 0
        assert summary.total == 0
