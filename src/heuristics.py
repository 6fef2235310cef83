# heuristics.py
# Heuristic board evaluation used at the leaves of the Expectimax search.

from collections import OrderedDict
from typing import Dict, Sequence, Tuple
import logging
import math
import threading

from core import Grid, to_grid, validate_grid
from settings import DEFAULT_WEIGHTS, EVALUATION_CACHE_SIZE, EvaluationWeights

logger = logging.getLogger(__name__)

_NEIGHBOUR_OFFSETS = ((-1, 0), (1, 0), (0, -1), (0, 1))


def _log2(value: int) -> float:
    return math.log2(value) if value else 0.0


# --- Features ---

def count_empty_cells(grid: Sequence[Sequence[int]]) -> int:
    return sum(1 for row in grid for value in row if value == 0)


def smoothness(grid: Sequence[Sequence[int]]) -> float:
    """
    Negative sum of log2 differences between each tile and the nearest
    non-empty tile to its right and below it. Closer to zero is smoother.
    """
    n = len(grid)
    total = 0.0
    for i in range(n):
        for j in range(n):
            if grid[i][j] == 0:
                continue
            value = math.log2(grid[i][j])
            for k in range(j + 1, n):
                if grid[i][k] != 0:
                    total -= abs(value - math.log2(grid[i][k]))
                    break
            for k in range(i + 1, n):
                if grid[k][j] != 0:
                    total -= abs(value - math.log2(grid[k][j]))
                    break
    return total


def _line_monotonicity(line: Sequence[int]) -> float:
    increasing = 0.0
    decreasing = 0.0
    for previous, current in zip(line, line[1:]):
        prev_log, cur_log = _log2(previous), _log2(current)
        if cur_log > prev_log:
            increasing += cur_log - prev_log
        elif prev_log > cur_log:
            decreasing += prev_log - cur_log
    return max(increasing, decreasing)


def monotonicity(grid: Sequence[Sequence[int]]) -> float:
    """Sum over all rows and columns of the larger of the rising and falling log2 totals."""
    rows = sum(_line_monotonicity(row) for row in grid)
    columns = sum(_line_monotonicity(column) for column in zip(*grid))
    return rows + columns


def max_value(grid: Sequence[Sequence[int]]) -> int:
    return max(max(row) for row in grid)


def snake_weights(size: int) -> Tuple[Tuple[int, ...], ...]:
    """
    Positional weights along a snake path anchored at the top-left corner.
    For size 4 this is [[15,14,13,12],[8,9,10,11],[7,6,5,4],[0,1,2,3]].
    """
    weights = []
    for r in range(size):
        base = (size - 1 - r) * size
        if r % 2 == 0:
            weights.append(tuple(base + size - 1 - c for c in range(size)))
        else:
            weights.append(tuple(base + c for c in range(size)))
    return tuple(weights)


def position_score(grid: Sequence[Sequence[int]]) -> float:
    weights = snake_weights(len(grid))
    return sum(
        weights[i][j] * math.log2(value)
        for i, row in enumerate(grid)
        for j, value in enumerate(row)
        if value != 0
    )


def potential_merges(grid: Sequence[Sequence[int]]) -> int:
    """Counts adjacent (right or below) pairs of equal non-empty tiles."""
    n = len(grid)
    merges = 0
    for i in range(n):
        for j in range(n):
            value = grid[i][j]
            if value == 0:
                continue
            if j + 1 < n and grid[i][j + 1] == value:
                merges += 1
            if i + 1 < n and grid[i + 1][j] == value:
                merges += 1
    return merges


def is_max_in_corner(grid: Sequence[Sequence[int]]) -> bool:
    n = len(grid)
    top = max_value(grid)
    return top in (grid[0][0], grid[0][n - 1], grid[n - 1][0], grid[n - 1][n - 1])


def trapped_penalty(grid: Sequence[Sequence[int]]) -> float:
    """
    Sum of log2(value) over tiles with no empty and no equal orthogonal neighbour.
    Off-board sides count as blocked.
    """
    n = len(grid)
    penalty = 0.0
    for i in range(n):
        for j in range(n):
            value = grid[i][j]
            if value == 0:
                continue
            trapped = True
            for di, dj in _NEIGHBOUR_OFFSETS:
                ni, nj = i + di, j + dj
                if 0 <= ni < n and 0 <= nj < n and grid[ni][nj] in (0, value):
                    trapped = False
                    break
            if trapped:
                penalty += math.log2(value)
    return penalty


def feature_breakdown(grid: Sequence[Sequence[int]]) -> Dict[str, float]:
    """All raw feature values, keyed like the EvaluationWeights fields."""
    return {
        "empty_cells": count_empty_cells(grid),
        "smoothness": smoothness(grid),
        "monotonicity": monotonicity(grid),
        "max_value": max_value(grid),
        "position_score": position_score(grid),
        "potential_merges": potential_merges(grid),
        "corner_max": 1 if is_max_in_corner(grid) else 0,
        "trapped_penalty": trapped_penalty(grid),
    }


# --- Evaluator ---

class Evaluator:
    """
    Scores grids with a weighted sum of features. Results are memoized in a
    least-recently-used cache keyed by grid content. Grids are not validated
    here; the module-level evaluate() is the checked entry point.
    """

    def __init__(self, weights: EvaluationWeights = DEFAULT_WEIGHTS,
                 cache_size: int = EVALUATION_CACHE_SIZE):
        if cache_size < 0:
            raise ValueError("cache_size must be zero or positive.")
        self.weights = weights
        self.cache_size = cache_size
        self._cache: "OrderedDict[Grid, float]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def evaluate(self, grid: Sequence[Sequence[int]]) -> float:
        key = to_grid(grid)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._hits += 1
                self._cache.move_to_end(key)
                return cached
            self._misses += 1

        score = self.score(key)
        if self.cache_size:
            with self._lock:
                self._cache[key] = score
                if len(self._cache) > self.cache_size:
                    self._cache.popitem(last=False)
        return score

    def score(self, grid: Grid) -> float:
        """Uncached evaluation."""
        w = self.weights
        features = feature_breakdown(grid)
        return (
            w.empty_cells * features["empty_cells"]
            + w.smoothness * features["smoothness"]
            + w.monotonicity * features["monotonicity"]
            + w.max_value * features["max_value"]
            + w.position_score * features["position_score"]
            + w.potential_merges * features["potential_merges"]
            + w.corner_max * features["corner_max"]
            - w.trapped_penalty * features["trapped_penalty"]
        )

    def cache_info(self) -> Dict[str, int]:
        return {
            "hits": self._hits,
            "misses": self._misses,
            "size": len(self._cache),
            "capacity": self.cache_size,
        }

    def clear_cache(self) -> None:
        with self._lock:
            logger.debug("Clearing evaluation cache (%d entries)", len(self._cache))
            self._cache.clear()
            self._hits = 0
            self._misses = 0


default_evaluator = Evaluator()


def evaluate(grid: Sequence[Sequence[int]]) -> float:
    """
    Evaluates a grid with the default weights.
    Raises:
        InvalidGridShape: If the grid is malformed.
    """
    return default_evaluator.evaluate(validate_grid(grid))
