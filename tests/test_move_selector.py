"""
Tests for AI move selection, hints, predictions and adaptive difficulty.
"""

import random
from concurrent.futures import ThreadPoolExecutor

import pytest

from core import DIRECTION, InvalidGridShape, apply_move, get_valid_moves, to_grid
from heuristics import Evaluator
from move_selector import AdaptiveDifficulty, MoveSelector, select_move

LEFT_COLUMN = to_grid([[2, 0, 0, 0], [4, 0, 0, 0], [8, 0, 0, 0], [16, 0, 0, 0]])

PAIR_GRID = to_grid([[2, 2, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]])

STUCK_GRID = to_grid([
    [2, 4, 8, 16],
    [32, 64, 128, 256],
    [512, 1024, 2, 4],
    [8, 16, 32, 64],
])

MIXED_GRID = to_grid([[2, 4, 0, 2], [0, 8, 2, 0], [4, 0, 0, 0], [16, 2, 0, 0]])


@pytest.fixture
def selector():
    return MoveSelector(Evaluator())


class TestSelectMove:
    @pytest.mark.parametrize("difficulty", ["easy", "medium", 1, 2])
    def test_only_legal_move(self, selector, difficulty):
        assert selector.select_move(LEFT_COLUMN, difficulty) == DIRECTION.RIGHT

    def test_greedy_strategy(self, selector):
        assert selector.select_move(LEFT_COLUMN, "hard", strategy="greedy") == DIRECTION.RIGHT

    def test_no_legal_move_returns_none(self, selector):
        assert selector.select_move(STUCK_GRID, "easy") is None
        assert selector.select_move(STUCK_GRID, "easy", strategy="greedy") is None
        assert selector.choose_move(STUCK_GRID, "easy", random.Random(0)) is None

    def test_choose_move_is_valid(self, selector):
        direction = selector.choose_move(MIXED_GRID, "easy", random.Random(0))
        assert direction in get_valid_moves(MIXED_GRID)

    def test_repeatable(self, selector):
        first = selector.search(MIXED_GRID, "easy")
        second = selector.search(MIXED_GRID, "easy")
        assert first == second

    def test_unknown_strategy(self, selector):
        with pytest.raises(ValueError):
            selector.select_move(MIXED_GRID, "easy", strategy="minimax")

    def test_unknown_difficulty(self, selector):
        with pytest.raises(ValueError):
            selector.select_move(MIXED_GRID, "nightmare")

    def test_module_level_select_move(self):
        assert select_move(LEFT_COLUMN, "easy") == DIRECTION.RIGHT

    def test_concurrent_searches_match_sequential(self, selector):
        grids = [MIXED_GRID, LEFT_COLUMN, MIXED_GRID, LEFT_COLUMN]
        expected = [selector.search(grid, "medium") for grid in grids]
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda grid: selector.search(grid, "medium"), grids))
        assert results == expected

    def test_rejects_malformed_grid(self, selector):
        with pytest.raises(InvalidGridShape):
            selector.select_move([[3, 0], [0, 0]], "easy")
        with pytest.raises(InvalidGridShape):
            selector.fallback_move([[2, 0, 0], [0, 0]])


class TestSinglePly:
    def test_medium_score(self, selector):
        # 4 points + evaluation 238 + corner bonus 50 + 1.5 * monotonicity 4
        assert selector.score_move(PAIR_GRID, DIRECTION.LEFT, "medium") == pytest.approx(298)

    def test_easy_is_scaled_down(self, selector):
        assert selector.score_move(PAIR_GRID, DIRECTION.LEFT, "easy") == pytest.approx(298 * 0.8)

    def test_expert_adds_strategy(self, selector):
        # max tile already in the anchor corner and moving LEFT: +50, nothing trapped
        assert selector.score_move(PAIR_GRID, DIRECTION.LEFT, "expert") == pytest.approx(298 * 1.5 + 50)

    def test_invalid_move_scores_negative_infinity(self, selector):
        assert selector.score_move(PAIR_GRID, DIRECTION.UP) == float("-inf")

    def test_rank_moves(self, selector):
        ranked = selector.rank_moves(MIXED_GRID)
        assert [move.direction for move in ranked] != []
        assert {move.direction for move in ranked} == set(get_valid_moves(MIXED_GRID))
        scores = [move.score for move in ranked]
        assert scores == sorted(scores, reverse=True)
        assert selector.select_greedy_move(MIXED_GRID) == ranked[0].direction


class TestFallbackAndHints:
    def test_fallback_finds_only_move(self):
        for seed in range(5):
            assert MoveSelector.fallback_move(LEFT_COLUMN, random.Random(seed)) == DIRECTION.RIGHT

    def test_fallback_on_stuck_grid(self):
        assert MoveSelector.fallback_move(STUCK_GRID, random.Random(0)) is None

    def test_fallback_returns_valid_move(self):
        direction = MoveSelector.fallback_move(MIXED_GRID, random.Random(11))
        assert apply_move(MIXED_GRID, direction).moved

    def test_hint(self, selector):
        assert selector.suggest_hint(LEFT_COLUMN, rng=random.Random(2)) == DIRECTION.RIGHT
        assert selector.suggest_hint(STUCK_GRID) is None
        assert selector.suggest_hint(MIXED_GRID, rng=random.Random(2)) in get_valid_moves(MIXED_GRID)

    def test_predictions(self):
        predictions = MoveSelector.predict_outcomes(MIXED_GRID, random.Random(4))
        assert [p.direction for p in predictions] == get_valid_moves(MIXED_GRID)
        for prediction in predictions:
            after = apply_move(MIXED_GRID, prediction.direction).grid
            tiles_after = sum(1 for row in after for v in row if v)
            assert [o.value for o in prediction.outcomes] == [2, 4]
            assert [o.probability for o in prediction.outcomes] == pytest.approx([0.9, 0.1])
            for outcome in prediction.outcomes:
                assert sum(1 for row in outcome.grid for v in row if v) == tiles_after + 1


class TestAdaptiveDifficulty:
    def test_rate_limited(self):
        adaptive = AdaptiveDifficulty("medium")
        assert adaptive.record(1000, 10, move_count=5) == "medium"
        assert len(adaptive.history) == 0

    def test_rising_trend_increases_tier(self):
        adaptive = AdaptiveDifficulty("medium")
        assert adaptive.record(100, 50, move_count=10) == "medium"
        assert adaptive.record(200, 50, move_count=20) == "hard"
        assert adaptive.profile.search_depth == 4

    def test_falling_trend_decreases_tier(self):
        adaptive = AdaptiveDifficulty("medium")
        adaptive.record(100, 1000, move_count=10)
        assert adaptive.record(50, 1000, move_count=20) == "easy"

    def test_loss_decreases_tier_immediately(self):
        adaptive = AdaptiveDifficulty("hard")
        assert adaptive.record(300, 1000, move_count=3, game_over=True) == "medium"
        assert adaptive.last_adjustment == 0

    def test_tiers_are_clamped(self):
        adaptive = AdaptiveDifficulty("easy")
        assert adaptive.record(0, 100, move_count=10, game_over=True) == "easy"
        top = AdaptiveDifficulty("expert")
        top.record(100, 10, move_count=10)
        assert top.record(500, 10, move_count=20) == "expert"

    def test_change_at_most_once_per_window(self):
        adaptive = AdaptiveDifficulty("medium")
        adaptive.record(100, 50, move_count=10)
        adaptive.record(200, 50, move_count=20)
        assert adaptive.record(900, 50, move_count=25) == "hard"
        assert len(adaptive.history) == 2

    def test_history_is_capped(self):
        adaptive = AdaptiveDifficulty("medium", history_size=3)
        for i in range(1, 6):
            adaptive.record(100, 100, move_count=10 * i)
        assert len(adaptive.history) == 3

    def test_move_interval(self):
        steady = AdaptiveDifficulty("medium")
        assert steady.move_interval_ms() == 200
        for i in range(1, 4):
            steady.record(100, 100, move_count=10 * i)
        assert steady.move_interval_ms() == 200

        strong = AdaptiveDifficulty("medium")
        for i in range(1, 4):
            strong.record(150, 100, move_count=10 * i)
        assert strong.current_level == "medium"
        assert strong.move_interval_ms() == pytest.approx(160)

        weak = AdaptiveDifficulty("medium")
        for i in range(1, 4):
            weak.record(50, 100, move_count=10 * i)
        assert weak.move_interval_ms() == pytest.approx(240)

    def test_reset(self):
        adaptive = AdaptiveDifficulty("medium")
        adaptive.record(100, 50, move_count=10)
        adaptive.record(200, 50, move_count=20)
        adaptive.reset()
        assert adaptive.current_level == "medium"
        assert len(adaptive.history) == 0

    def test_unknown_base_level(self):
        with pytest.raises(ValueError):
            AdaptiveDifficulty("impossible")
