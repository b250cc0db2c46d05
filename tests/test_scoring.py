import pytest

from liquidity_engine.models import PriceLevel
from liquidity_engine.scoring import (
    calculate_concentration,
    calculate_depth,
    calculate_score,
    calculate_spread,
)


def levels(*rows):
    return [PriceLevel(price=p, quantity=q) for p, q in rows]


def test_spread_sentinel_when_a_side_is_empty():
    bids = levels((99, 10))
    assert calculate_score(bids, []).spread == 100
    assert calculate_score([], bids).spread == 100
    assert calculate_score([], []).spread == 100


def test_spread_uses_best_prices_not_first_levels():
    bids = levels((98, 1), (100, 1), (99, 1))
    asks = levels((103, 1), (101, 1), (102, 1))
    assert calculate_spread(bids, asks) == pytest.approx((101 - 100) / 100)


def test_concentration_degenerate_cases():
    assert calculate_concentration([], []) == 1
    zero = levels((100, 0), (101, 0))
    assert calculate_concentration(zero, []) == 1
    assert calculate_score(zero, []).concentration == 1


def test_concentration_even_book_is_zero():
    bids = levels((100, 5), (99, 5))
    asks = levels((101, 5), (102, 5))
    assert calculate_concentration(bids, asks) == pytest.approx(0.0)


def test_concentration_pools_both_sides():
    # Quantities 1, 3 (sorted) -> ((2-2-1)*1 + (4-2-1)*3) / (2*4) = 2/8
    bids = levels((100, 3))
    asks = levels((101, 1))
    assert calculate_concentration(bids, asks) == pytest.approx(0.25)


def test_depth_averages_best_ten_levels_per_side():
    bids = levels(*[(100 - i, 1) for i in range(15)])
    asks = levels(*[(101 + i, 3) for i in range(12)])
    assert calculate_depth(bids, asks) == pytest.approx((10 * 1 + 10 * 3) / 2)


def test_depth_takes_best_priced_levels_from_unsorted_input():
    bids = levels(*[(90 + i, 1) for i in range(10)], (50, 1000))
    asks = levels((500, 1000), *[(101 + i, 1) for i in range(10)])
    assert calculate_depth(bids, asks) == pytest.approx(10)


def test_overall_score_composite():
    bids = levels((100, 50_000), (99, 50_000))
    asks = levels((101, 50_000), (102, 50_000))
    score = calculate_score(bids, asks)

    depth_score = 100  # depth 100k caps at 100
    spread_score = 100 - 0.01 * 100
    concentration_score = 100
    expected = round(depth_score * 0.4 + spread_score * 0.4 + concentration_score * 0.2, 2)

    assert score.depth == 100_000
    assert score.overall == pytest.approx(expected)
    assert score.resilience == 0


def test_overall_is_rounded_to_two_decimals():
    bids = levels((100, 3), (99, 7))
    asks = levels((100.3, 11))
    score = calculate_score(bids, asks)
    assert score.overall == round(score.overall, 2)


def test_empty_book_scores_only_nothing():
    score = calculate_score([], [])
    # depth 0, spread 100 -> spread score 0, concentration 1 -> 0
    assert score.overall == 0
    assert score.depth == 0
