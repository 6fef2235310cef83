# core.py
# Stateless grid transition engine for the 2048 game: line sliding, moves,
# tile spawning and terminal-state checks. Grids are immutable tuples of tuples.

from enum import Enum
from typing import List, NamedTuple, Optional, Sequence, Tuple
import random

from settings import GRID_SIZE, SPAWN_FOUR_PROBABILITY, TARGET_VALUE

Grid = Tuple[Tuple[int, ...], ...]


class GameProgressState(Enum):
    """Represents the current progress state of the game."""
    IN_PROGRESS = 1
    GAME_OVER = 2  # Lost
    GAME_WON = 3


class DIRECTION(Enum):
    """Represents the possible move directions. Iteration order is the search tie-break order."""
    UP = 1
    DOWN = 2
    LEFT = 3
    RIGHT = 4


class InvalidGridShape(ValueError):
    """Raised when a grid is not a square matrix of powers of two (or zeros)."""


class LineResult(NamedTuple):
    line: Tuple[int, ...]
    changed: bool
    score: int
    merge_count: int
    merged_indices: Tuple[int, ...]


class MoveResult(NamedTuple):
    grid: Grid
    moved: bool
    score_gained: int
    merge_count: int
    merged_cells: Tuple[Tuple[int, int], ...]


# --- Board Helper Functions ---

def to_grid(board: Sequence[Sequence[int]]) -> Grid:
    """Returns an immutable copy of any sequence-of-sequences board."""
    return tuple(tuple(row) for row in board)


def get_board_size(board: Sequence[Sequence[int]]) -> int:
    """
    Gets the size (N) of an N x N board.
    Args:
        board (Sequence[Sequence[int]]): The game board.
    Returns:
        int: The dimension of the board.
    Raises:
        InvalidGridShape: If the board is not square or empty.
    """
    if not board or not all(len(row) == len(board) for row in board):
        raise InvalidGridShape("Board must be a non-empty square matrix.")
    return len(board)


def _is_tile_value(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value == 0 or (value >= 2 and value & (value - 1) == 0)


def validate_grid(board: Sequence[Sequence[int]], size: Optional[int] = None) -> Grid:
    """
    Checks the shape and contents of a board and returns it as an immutable grid.
    Args:
        board (Sequence[Sequence[int]]): The board to check.
        size (Optional[int]): Required dimension. Any square size is accepted when None.
    Returns:
        Grid: The validated board.
    Raises:
        InvalidGridShape: If the board is not square, has the wrong size, or holds
                          a value that is neither 0 nor a power of two >= 2.
    """
    n = get_board_size(board)
    if size is not None and n != size:
        raise InvalidGridShape(f"Board must be {size}x{size}, got {n}x{n}.")
    for r, row in enumerate(board):
        for c, value in enumerate(row):
            if not _is_tile_value(value):
                raise InvalidGridShape(
                    f"Invalid tile value {value!r} at ({r}, {c}); "
                    "tiles must be 0 or a power of two."
                )
    return to_grid(board)


def empty_grid(size: int = GRID_SIZE) -> Grid:
    return tuple((0,) * size for _ in range(size))


def get_empty_cells(board: Sequence[Sequence[int]]) -> List[Tuple[int, int]]:
    """
    Get coordinates of empty (0-value) cells in the given board.
    Args:
        board (Sequence[Sequence[int]]): The board to check.
    Returns:
        List[Tuple[int, int]]: List of (row, col) tuples for empty cells, in row-major order.
    """
    return [
        (row, col)
        for row, line in enumerate(board)
        for col, value in enumerate(line)
        if value == 0
    ]


def place_tile(grid: Grid, row: int, col: int, value: int) -> Grid:
    """Returns a new grid with `value` written at (row, col). Untouched rows are shared."""
    new_row = grid[row][:col] + (value,) + grid[row][col + 1:]
    return grid[:row] + (new_row,) + grid[row + 1:]


def spawn_random_tile(grid: Sequence[Sequence[int]], rng: Optional[random.Random] = None) -> Grid:
    """
    Places a new tile (90% chance of 2, 10% chance of 4) on a uniformly chosen empty cell.
    Args:
        grid (Sequence[Sequence[int]]): The current game board.
        rng (Optional[random.Random]): Random source; the module-level generator when None.
    Returns:
        Grid: A new grid with the tile added, or the same grid when it is full.
    Raises:
        InvalidGridShape: If the grid is malformed.
    """
    rng = rng or random
    grid = validate_grid(grid)
    empty_cells = get_empty_cells(grid)
    if not empty_cells:
        return grid
    row, col = rng.choice(empty_cells)
    value = 4 if rng.random() < SPAWN_FOUR_PROBABILITY else 2
    return place_tile(grid, row, col, value)


def initialize_board(size: int = GRID_SIZE,
                     rng: Optional[random.Random] = None) -> Tuple[List[List[int]], int, GameProgressState]:
    """
    Initializes a new game board with two random tiles.
    Args:
        size (int): The dimension of the N x N game board. Default is 4.
        rng (Optional[random.Random]): Random source.
    Returns:
        Tuple[List[List[int]], int, GameProgressState]: The initial board, score (0),
                                                       and game state (IN_PROGRESS).
    Raises:
        ValueError: If board size is not an integer of at least 2.
    """
    if isinstance(size, bool) or not isinstance(size, int) or size < 2:
        raise ValueError("Board size must be an integer of at least 2.")

    grid = empty_grid(size)
    grid = spawn_random_tile(grid, rng)
    grid = spawn_random_tile(grid, rng)

    return [list(row) for row in grid], 0, GameProgressState.IN_PROGRESS


# --- Line Manipulation ---

def slide_line(line: Sequence[int]) -> LineResult:
    """
    Slides a single line towards index 0, merging equal neighbours once.
    A tile produced by a merge never merges again in the same pass, so
    [2, 2, 2, 2] becomes [4, 4, 0, 0].
    Args:
        line (Sequence[int]): The line, oriented so index 0 is the direction of travel.
    Returns:
        LineResult: The new line, whether it differs from the input, points earned,
                    number of merges, and the output indices holding merged tiles.
    """
    n = len(line)
    compacted = [value for value in line if value != 0]
    result = []
    merged_indices = []
    score = 0

    i = 0
    while i < len(compacted):
        value = compacted[i]
        if i + 1 < len(compacted) and compacted[i + 1] == value:
            merged_indices.append(len(result))
            result.append(value * 2)
            score += value * 2
            i += 2  # both tiles consumed
        else:
            result.append(value)
            i += 1

    result += [0] * (n - len(result))
    new_line = tuple(result)
    changed = new_line != tuple(line)
    return LineResult(new_line, changed, score, len(merged_indices), tuple(merged_indices))


# --- Board Transformations ---

def transpose_board(board: Sequence[Sequence[int]]) -> Grid:
    """
    Transposes a given board (swaps rows and columns).
    Args:
        board (Sequence[Sequence[int]]): The board to transpose.
    Returns:
        Grid: A new transposed board.
    """
    return tuple(zip(*board))


def rotate_180(board: Sequence[Sequence[int]]) -> Grid:
    """Rotates the board by 180 degrees."""
    return tuple(tuple(row[::-1]) for row in board[::-1])


# --- Core Game Move Processing ---

def _line_cells(n: int, index: int, direction: DIRECTION) -> List[Tuple[int, int]]:
    """Cell coordinates of line `index`, ordered towards the direction of travel."""
    if direction == DIRECTION.LEFT:
        return [(index, c) for c in range(n)]
    if direction == DIRECTION.RIGHT:
        return [(index, c) for c in reversed(range(n))]
    if direction == DIRECTION.UP:
        return [(r, index) for r in range(n)]
    if direction == DIRECTION.DOWN:
        return [(r, index) for r in reversed(range(n))]
    raise ValueError(f"Invalid direction specified: {direction!r}")


def apply_move(grid: Sequence[Sequence[int]], direction: DIRECTION,
               allow_terminal: bool = False) -> MoveResult:
    """
    Applies a move to every row or column of the grid.
    Args:
        grid (Sequence[Sequence[int]]): The current game board.
        direction (DIRECTION): The direction to move.
        allow_terminal (bool): Process the move even if the grid is already game over.
                               Without it a game-over grid is returned unchanged.
    Returns:
        MoveResult: The new grid, whether anything moved, the points gained,
                    the number of merges and the cells that hold merged tiles.
    Raises:
        ValueError: If an invalid direction is specified.
        InvalidGridShape: If the grid is malformed.
    """
    if not isinstance(direction, DIRECTION):
        raise ValueError(f"Invalid direction specified: {direction!r}")
    return _apply_move(validate_grid(grid), direction, allow_terminal)


def _apply_move(grid: Grid, direction: DIRECTION, allow_terminal: bool = False) -> MoveResult:
    """apply_move without input checks, for grids that are already validated."""
    n = len(grid)

    if not allow_terminal and _is_game_over(grid):
        return MoveResult(grid, False, 0, 0, ())

    cells = [list(row) for row in grid]
    moved = False
    score_gained = 0
    merge_count = 0
    merged_cells = []

    for index in range(n):
        coords = _line_cells(n, index, direction)
        outcome = slide_line([grid[r][c] for r, c in coords])
        if not outcome.changed:
            continue
        for (r, c), value in zip(coords, outcome.line):
            cells[r][c] = value
        moved = True
        score_gained += outcome.score
        merge_count += outcome.merge_count
        merged_cells.extend(coords[i] for i in outcome.merged_indices)

    new_grid = to_grid(cells) if moved else grid
    return MoveResult(new_grid, moved, score_gained, merge_count, tuple(sorted(merged_cells)))


def get_valid_moves(grid: Sequence[Sequence[int]]) -> List[DIRECTION]:
    """Returns the directions that change the grid, in UP, DOWN, LEFT, RIGHT order."""
    grid = validate_grid(grid)
    return [direction for direction in DIRECTION if _apply_move(grid, direction).moved]


# --- Game State Checks ---

def has_reached_target(board: Sequence[Sequence[int]], target: int = TARGET_VALUE) -> bool:
    """
    Check if any tile equals the target value.
    Args:
        board (Sequence[Sequence[int]]): The game board.
        target (int): The tile value that signifies a win. Default is 2048.
    Returns:
        bool: True if the target tile is on the board, False otherwise.
    Raises:
        InvalidGridShape: If the board is malformed.
    """
    return _has_reached_target(validate_grid(board), target)


def _has_reached_target(grid: Grid, target: int) -> bool:
    return any(value == target for row in grid for value in row)


def is_game_over(board: Sequence[Sequence[int]]) -> bool:
    """
    A board is over when it has no empty cell and no equal pair of
    horizontally or vertically adjacent tiles.
    Args:
        board (Sequence[Sequence[int]]): The game board, after the spawn of the turn.
    Returns:
        bool: True if no move can change the board.
    Raises:
        InvalidGridShape: If the board is malformed.
    """
    return _is_game_over(validate_grid(board))


def _is_game_over(grid: Grid) -> bool:
    n = len(grid)
    for r in range(n):
        for c in range(n):
            value = grid[r][c]
            if value == 0:
                return False
            if c + 1 < n and grid[r][c + 1] == value:
                return False
            if r + 1 < n and grid[r + 1][c] == value:
                return False
    return True


def determine_game_status(board: Sequence[Sequence[int]], win_tile: int = TARGET_VALUE,
                          keep_playing: bool = False) -> GameProgressState:
    """
    Determines the current progress state of the game based on the board.
    Args:
        board (Sequence[Sequence[int]]): The current game board.
        win_tile (int): The tile value that signifies a win. Default is 2048.
        keep_playing (bool): The player chose to continue after reaching the win tile.
    Returns:
        GameProgressState: The current state (IN_PROGRESS, GAME_WON, GAME_OVER).
    Raises:
        InvalidGridShape: If the board is malformed.
    """
    grid = validate_grid(board)
    if not keep_playing and _has_reached_target(grid, win_tile):
        return GameProgressState.GAME_WON

    if _is_game_over(grid):
        return GameProgressState.GAME_OVER

    return GameProgressState.IN_PROGRESS
