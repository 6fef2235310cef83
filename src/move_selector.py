# move_selector.py
# AI move selection: difficulty-scaled Expectimax, a cheaper single-ply
# scorer, a randomized last-resort picker, adaptive difficulty, and the
# hint/prediction helpers used by UI overlays.

from typing import Deque, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union
from collections import deque
import logging
import random

from core import DIRECTION, Grid, _apply_move, get_empty_cells, get_valid_moves, place_tile, spawn_random_tile, validate_grid
from expectimax import ExpectimaxSearch, SearchResult
from heuristics import Evaluator, default_evaluator, is_max_in_corner, max_value, monotonicity, trapped_penalty
from settings import (
    ADAPTIVE_HISTORY_SIZE,
    ADAPTIVE_MIN_MOVES_BETWEEN_CHANGES,
    DIFFICULTY_LEVELS,
    DIFFICULTY_PROFILES,
    SPAWN_FOUR_PROBABILITY,
    DifficultyProfile,
    get_profile,
)

logger = logging.getLogger(__name__)

Difficulty = Union[str, int, DifficultyProfile]

CORNER_BONUS = 50.0
MONOTONICITY_BONUS = 1.5
STRATEGIC_CORNER_BONUS = 50.0
STRATEGIC_TRAP_PENALTY = 20.0

HINT_SCORE_WEIGHT = 1.5
HINT_OPTIONS_WEIGHT = 0.5
HINT_FUTURE_DISCOUNT = 0.3


class ScoredMove(NamedTuple):
    direction: DIRECTION
    score: float


class SpawnOutcome(NamedTuple):
    grid: Grid
    value: int
    probability: float


class Prediction(NamedTuple):
    direction: DIRECTION
    outcomes: Tuple[SpawnOutcome, ...]


class MoveSelector:
    """Chooses moves for the AI player at a given difficulty."""

    def __init__(self, evaluator: Optional[Evaluator] = None,
                 profiles: Mapping[str, DifficultyProfile] = DIFFICULTY_PROFILES):
        self.evaluator = evaluator or default_evaluator
        self.profiles = profiles

    def profile(self, difficulty: Difficulty) -> DifficultyProfile:
        return get_profile(difficulty, self.profiles)

    # --- Expectimax path ---

    def search(self, grid: Sequence[Sequence[int]], difficulty: Difficulty) -> SearchResult:
        """Runs Expectimax at the depth of the given difficulty. Each call gets its own search state."""
        return ExpectimaxSearch(self.evaluator).search(grid, self.profile(difficulty).search_depth, True)

    def select_move(self, grid: Sequence[Sequence[int]], difficulty: Difficulty = "medium",
                    strategy: str = "expectimax") -> Optional[DIRECTION]:
        """
        Args:
            grid: The current board.
            difficulty: Level name, search depth or profile.
            strategy: "expectimax" for the full search, "greedy" for the single-ply scorer.
        Returns:
            The chosen direction, or None when no direction changes the grid.
        Raises:
            InvalidGridShape: If the grid is malformed.
            ValueError: For an unknown difficulty or strategy.
        """
        if strategy == "expectimax":
            return self.search(grid, difficulty).best_direction
        if strategy == "greedy":
            return self.select_greedy_move(grid, difficulty)
        raise ValueError(f"Unknown strategy {strategy!r}; expected 'expectimax' or 'greedy'.")

    # --- Single-ply path ---

    def score_move(self, grid: Sequence[Sequence[int]], direction: DIRECTION,
                   difficulty: Difficulty = "medium") -> float:
        """
        Heuristic value of the grid right after `direction`, scaled for the difficulty.
        Moves that do not change the grid score -inf.
        """
        grid = validate_grid(grid)
        profile = self.profile(difficulty)
        outcome = _apply_move(grid, direction)
        if not outcome.moved:
            return float("-inf")

        after = outcome.grid
        base = (
            outcome.score_gained
            + self.evaluator.evaluate(after)
            + (CORNER_BONUS if is_max_in_corner(after) else 0.0)
            + MONOTONICITY_BONUS * monotonicity(after)
        )
        score = base * profile.move_weight
        if profile.strategic_bonus:
            score += self._strategic_score(grid, direction)
        return score

    @staticmethod
    def _strategic_score(grid: Grid, direction: DIRECTION) -> float:
        score = 0.0
        if direction in (DIRECTION.LEFT, DIRECTION.UP) and grid[0][0] == max_value(grid):
            score += STRATEGIC_CORNER_BONUS
        score -= STRATEGIC_TRAP_PENALTY * trapped_penalty(grid)
        return score

    def rank_moves(self, grid: Sequence[Sequence[int]],
                   difficulty: Difficulty = "medium") -> List[ScoredMove]:
        """Valid moves with their single-ply scores, best first. Ties keep UP, DOWN, LEFT, RIGHT order."""
        scored = [
            ScoredMove(direction, self.score_move(grid, direction, difficulty))
            for direction in get_valid_moves(validate_grid(grid))
        ]
        return sorted(scored, key=lambda move: move.score, reverse=True)

    def select_greedy_move(self, grid: Sequence[Sequence[int]],
                           difficulty: Difficulty = "medium") -> Optional[DIRECTION]:
        ranked = self.rank_moves(grid, difficulty)
        return ranked[0].direction if ranked else None

    # --- Fallbacks ---

    @staticmethod
    def fallback_move(grid: Sequence[Sequence[int]],
                      rng: Optional[random.Random] = None) -> Optional[DIRECTION]:
        """Tries all four directions in random order; None means the game is over."""
        grid = validate_grid(grid)
        rng = rng or random
        directions = list(DIRECTION)
        rng.shuffle(directions)
        for direction in directions:
            if _apply_move(grid, direction).moved:
                logger.debug("Fallback move %s", direction.name)
                return direction
        logger.debug("No possible moves detected")
        return None

    def choose_move(self, grid: Sequence[Sequence[int]], difficulty: Difficulty = "medium",
                    rng: Optional[random.Random] = None) -> Optional[DIRECTION]:
        """
        The full AI turn: Expectimax, then the single-ply scorer, then the
        randomized scan. None means no legal move exists.
        """
        grid = validate_grid(grid)
        direction = self.select_move(grid, difficulty, "expectimax")
        if direction is None:
            logger.warning("Expectimax found no move; trying the single-ply scorer")
            direction = self.select_greedy_move(grid, difficulty)
        if direction is None:
            direction = self.fallback_move(grid, rng)
        return direction

    # --- Hints and predictions ---

    def suggest_hint(self, grid: Sequence[Sequence[int]], lookahead: int = 2,
                     rng: Optional[random.Random] = None) -> Optional[DIRECTION]:
        """
        Suggests a move for a human player: each valid move is scored with a
        sampled-spawn look-ahead, combined with how many moves stay open after it.
        """
        grid = validate_grid(grid)
        rng = rng or random
        candidates = []
        for direction in get_valid_moves(grid):
            score, future_options = self._lookahead(grid, direction, lookahead, rng)
            combined = score * HINT_SCORE_WEIGHT + future_options * HINT_OPTIONS_WEIGHT
            candidates.append(ScoredMove(direction, combined))

        if not candidates:
            return None
        candidates.sort(key=lambda move: move.score, reverse=True)
        return candidates[0].direction

    def _lookahead(self, grid: Grid, direction: DIRECTION, depth: int,
                   rng) -> Tuple[float, int]:
        if depth == 0:
            return 0.0, 0
        outcome = _apply_move(grid, direction)
        if not outcome.moved:
            return float("-inf"), 0

        spawned = spawn_random_tile(outcome.grid, rng)
        score = self.score_move(grid, direction)
        future_moves = get_valid_moves(spawned)

        if depth > 1:
            future_scores = [self._lookahead(spawned, d, depth - 1, rng)[0] for d in DIRECTION]
            score += max(future_scores) * HINT_FUTURE_DISCOUNT
        return score, len(future_moves)

    @staticmethod
    def predict_outcomes(grid: Sequence[Sequence[int]],
                         rng: Optional[random.Random] = None) -> List[Prediction]:
        """
        For each valid direction, the post-move grid with a 2 and with a 4
        spawned at a sampled empty cell, tagged with their probabilities.
        """
        grid = validate_grid(grid)
        rng = rng or random
        predictions = []
        for direction in get_valid_moves(grid):
            after = _apply_move(grid, direction).grid
            empty_cells = get_empty_cells(after)
            outcomes = []
            for value, probability in ((2, 1.0 - SPAWN_FOUR_PROBABILITY), (4, SPAWN_FOUR_PROBABILITY)):
                row, col = rng.choice(empty_cells)
                outcomes.append(SpawnOutcome(place_tile(after, row, col, value), value, probability))
            predictions.append(Prediction(direction, tuple(outcomes)))
        return predictions


default_selector = MoveSelector()


def select_move(grid: Sequence[Sequence[int]], difficulty: Difficulty = "medium",
                strategy: str = "expectimax") -> Optional[DIRECTION]:
    """Picks a move with the default selector."""
    return default_selector.select_move(grid, difficulty, strategy)


# --- Adaptive difficulty ---

class PerformanceSample(NamedTuple):
    score: int
    move_count: int


class AdaptiveDifficulty:
    """
    Moves the active difficulty up or down one tier based on a trailing window
    of (score, move count) samples. A change is considered at most once every
    `min_moves_between_changes` moves, except right after a lost game.
    """

    def __init__(self, base_level: str = "medium",
                 history_size: int = ADAPTIVE_HISTORY_SIZE,
                 min_moves_between_changes: int = ADAPTIVE_MIN_MOVES_BETWEEN_CHANGES,
                 levels: Sequence[str] = DIFFICULTY_LEVELS,
                 profiles: Mapping[str, DifficultyProfile] = DIFFICULTY_PROFILES):
        if base_level not in levels:
            raise ValueError(f"Unknown difficulty {base_level!r}; expected one of {list(levels)}.")
        self.levels = list(levels)
        self.profiles = profiles
        self.base_level = base_level
        self.current_level = base_level
        self.min_moves_between_changes = min_moves_between_changes
        self.history: Deque[PerformanceSample] = deque(maxlen=history_size)
        self.last_adjustment = 0
        self.best_score = 0

    @property
    def profile(self) -> DifficultyProfile:
        return self.profiles[self.current_level]

    def reset(self) -> None:
        self.current_level = self.base_level
        self.history.clear()
        self.last_adjustment = 0

    def score_trend(self) -> float:
        if len(self.history) < 2:
            return 0.0
        return (self.history[-1].score - self.history[0].score) / len(self.history)

    def record(self, score: int, best_score: int, move_count: int, game_over: bool = False) -> str:
        """
        Feeds the latest game state and returns the (possibly new) difficulty level.
        Args:
            score: Current game score.
            best_score: The player's best score so far.
            move_count: Moves made in the current game.
            game_over: True when the game just ended in a loss.
        """
        self.best_score = max(self.best_score, best_score)
        if move_count - self.last_adjustment < self.min_moves_between_changes and not game_over:
            return self.current_level

        self.history.append(PerformanceSample(score, move_count))
        trend = self.score_trend()
        index = self.levels.index(self.current_level)

        if game_over:
            index = max(0, index - 1)
        elif score > best_score * 1.3 and trend > 0:
            index = min(len(self.levels) - 1, index + 1)
        elif score < best_score * 0.7 and trend < 0:
            index = max(0, index - 1)

        new_level = self.levels[index]
        if new_level != self.current_level:
            logger.info("Adaptive difficulty %s -> %s (score=%d, best=%d, trend=%.1f)",
                        self.current_level, new_level, score, best_score, trend)
        self.current_level = new_level
        # A finished game restarts the move counter.
        self.last_adjustment = 0 if game_over else move_count
        return self.current_level

    def move_interval_ms(self) -> float:
        """The profile's move interval, sped up for strong recent play and slowed for weak play."""
        base = self.profile.move_interval_ms
        recent = list(self.history)[-5:]
        if len(recent) < 3 or self.best_score <= 0:
            return base
        average = sum(sample.score for sample in recent) / len(recent)
        ratio = average / self.best_score
        if ratio > 1.2:
            return base * 0.8
        if ratio < 0.8:
            return base * 1.2
        return base
