# expectimax.py
# Expectimax search over the 2048 game tree: MAX nodes for the player's move,
# CHANCE nodes for the random tile spawn.

from typing import Dict, NamedTuple, Optional, Sequence, Tuple
import logging

from core import DIRECTION, Grid, _apply_move, _is_game_over, get_empty_cells, place_tile, validate_grid
from heuristics import Evaluator, default_evaluator
from settings import SPAWN_FOUR_PROBABILITY

logger = logging.getLogger(__name__)

SPAWN_OUTCOMES: Tuple[Tuple[int, float], ...] = (
    (2, 1.0 - SPAWN_FOUR_PROBABILITY),
    (4, SPAWN_FOUR_PROBABILITY),
)


class SearchResult(NamedTuple):
    expected_score: float
    best_direction: Optional[DIRECTION]


class ExpectimaxSearch:
    """
    Depth-bounded Expectimax. One ply of depth is consumed by every node, so
    depth 1 scores each move by the heuristic value of the post-move grid and
    depth 2 also averages over the tile spawned after it.

    An instance holds the state of one search at a time; concurrent callers
    need their own instances. The evaluator may be shared.
    """

    def __init__(self, evaluator: Evaluator = default_evaluator):
        self.evaluator = evaluator
        self._table: Dict[Tuple[Grid, int, bool], SearchResult] = {}
        self.nodes = 0

    def search(self, grid: Sequence[Sequence[int]], depth: int,
               is_player_turn: bool = True) -> SearchResult:
        """
        Args:
            grid: The position to search from.
            depth: Remaining plies; 0 evaluates the grid directly.
            is_player_turn: True for a MAX node, False for a CHANCE node.
        Returns:
            SearchResult: Expected heuristic value and, at a MAX node with a legal
                          move, the direction achieving it.
        Raises:
            InvalidGridShape: If the grid is malformed.
            ValueError: If depth is negative.
        """
        if depth < 0:
            raise ValueError("Search depth must not be negative.")
        grid = validate_grid(grid)
        # Transpositions are only reused within one search call.
        self._table = {}
        self.nodes = 0
        try:
            result = self._node(grid, depth, is_player_turn)
        finally:
            self._table = {}
        logger.debug("Expectimax depth=%d visited %d nodes, best=%s score=%.2f",
                     depth, self.nodes, result.best_direction, result.expected_score)
        return result

    def _node(self, grid: Grid, depth: int, is_player_turn: bool) -> SearchResult:
        key = (grid, depth, is_player_turn)
        cached = self._table.get(key)
        if cached is not None:
            return cached

        self.nodes += 1
        if depth == 0 or _is_game_over(grid):
            result = SearchResult(self.evaluator.evaluate(grid), None)
        elif is_player_turn:
            result = self._max_node(grid, depth)
        else:
            result = self._chance_node(grid, depth)

        self._table[key] = result
        return result

    def _max_node(self, grid: Grid, depth: int) -> SearchResult:
        best_score = float("-inf")
        best_direction = None

        for direction in DIRECTION:
            outcome = _apply_move(grid, direction)
            if not outcome.moved:
                continue
            score = self._node(outcome.grid, depth - 1, False).expected_score
            if score > best_score:
                best_score = score
                best_direction = direction

        if best_direction is None:
            return SearchResult(self.evaluator.evaluate(grid), None)
        return SearchResult(best_score, best_direction)

    def _chance_node(self, grid: Grid, depth: int) -> SearchResult:
        empty_cells = get_empty_cells(grid)
        if not empty_cells:
            return SearchResult(self.evaluator.evaluate(grid), None)

        total = 0.0
        for row, col in empty_cells:
            for value, probability in SPAWN_OUTCOMES:
                child = place_tile(grid, row, col, value)
                total += probability * self._node(child, depth - 1, True).expected_score

        return SearchResult(total / len(empty_cells), None)


def expectimax(grid: Sequence[Sequence[int]], depth: int, is_player_turn: bool = True,
               evaluator: Evaluator = default_evaluator) -> SearchResult:
    """Runs a one-off search with a fresh ExpectimaxSearch."""
    return ExpectimaxSearch(evaluator).search(grid, depth, is_player_turn)
