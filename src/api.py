import logging
from typing import List, Optional, Union

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

import core
from heuristics import feature_breakdown
from move_selector import MoveSelector

logger = logging.getLogger(__name__)

# Initialize the rate limiter
limiter = Limiter(key_func=get_remote_address)
app = FastAPI(
    title="2048 Game API",
    description="A stateless API for playing the 2048 game against or alongside an Expectimax AI. "\
                "Manage your game state (board, score, win_tile) on the client side.",
    version="2.0.0"
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

selector = MoveSelector()

# --- Pydantic Models for API requests and responses ---

class NewGameSettings(BaseModel):
    """Settings for creating a new game."""
    size: Optional[int] = Field(
        default=4,
        gt=1, # Board size must be at least 2x2
        description="Size of the N x N game board (e.g., 4 for a 4x4 board)."
    )
    win_tile: Optional[int] = Field(
        default=2048,
        gt=0,
        description="The tile value to achieve for winning the game (e.g., 2048)."
    )

class GameStateData(BaseModel):
    """Represents the complete state of a game instance."""
    board: List[List[int]] = Field(..., description="The N x N game board, represented as a list of lists.")
    score: int = Field(..., ge=0, description="Current score of the game.")
    progress: core.GameProgressState = Field(
        ...,
        description="Current progress state of the game (IN_PROGRESS, GAME_WON, GAME_OVER)."
    )
    win_tile: int = Field(..., gt=0, description="The tile value required to win this game instance.")
    board_size: int = Field(..., gt=0, description="The dimension N of the N x N board.")


class MoveRequestData(BaseModel):
    """Data required to make a move."""
    board: List[List[int]] = Field(..., description="Current N x N game board state before the move.")
    score: int = Field(..., ge=0, description="Current score before the move.")
    direction: core.DIRECTION = Field(
        ...,
        description="Direction of the move (1=UP, 2=DOWN, 3=LEFT, 4=RIGHT)."
    )
    win_tile: int = Field(..., gt=0, description="The win condition tile for this game instance.")
    keep_playing: bool = Field(
        default=False,
        description="Continue after the win tile has been reached."
    )

class MoveResponseData(GameStateData):
    """Response after a move, including the new game state and move effectiveness."""
    move_was_effective: bool = Field(
        ...,
        description="True if the move resulted in a change to the board state, False otherwise."
    )
    score_gained: int = Field(default=0, ge=0, description="Points earned by merges in this move.")
    merge_count: int = Field(default=0, ge=0, description="Number of merges performed by this move.")
    merged_cells: List[List[int]] = Field(
        default_factory=list,
        description="[row, col] of every cell holding a freshly merged tile."
    )
    message: Optional[str] = Field(
        default=None,
        description="An optional message, e.g., if a move was invalid, game ended, or other info."
    )


class AIMoveRequestData(BaseModel):
    """Board to analyse and the strength of the AI."""
    board: List[List[int]] = Field(..., description="Current N x N game board.")
    difficulty: Union[int, str] = Field(
        default="medium",
        description="easy, medium, hard, expert, or a bare search depth (1-6)."
    )
    strategy: str = Field(
        default="expectimax",
        pattern="^(expectimax|greedy)$",
        description="'expectimax' for the full search, 'greedy' for the single-ply scorer."
    )

class AIMoveResponseData(BaseModel):
    direction: Optional[core.DIRECTION] = Field(
        ...,
        description="Chosen move, or null when no move changes the board (game over)."
    )
    expected_score: Optional[float] = Field(
        default=None,
        description="Expected heuristic value of the chosen move (expectimax only)."
    )
    search_depth: int = Field(..., description="Depth the search ran at.")


class EvaluateRequestData(BaseModel):
    board: List[List[int]] = Field(..., description="The N x N game board to score.")

class RankedMoveData(BaseModel):
    direction: core.DIRECTION
    score: float

class EvaluateResponseData(BaseModel):
    score: float = Field(..., description="Heuristic value of the board; higher is better.")
    features: dict = Field(..., description="Raw feature values behind the score.")
    ranked_moves: List[RankedMoveData] = Field(
        ...,
        description="Valid moves ranked by single-ply score, best first."
    )


class HintResponseData(BaseModel):
    direction: Optional[core.DIRECTION] = Field(..., description="Suggested move, or null if none exists.")


# --- API Endpoints ---

@app.post("/game/new", response_model=GameStateData, summary="Start a New 2048 Game")
@limiter.limit("100/minute")
async def start_new_game(request: Request, settings: NewGameSettings):
    """
    Initializes a new 2048 game based on the provided settings (size and win_tile).

    - **size**: Dimension of the N x N board (e.g., 4 for 4x4). Default is 4.
    - **win_tile**: Tile value to reach to win (e.g., 2048). Default is 2048.

    Returns the initial game state, including the board with two random tiles,
    score (0), progress status (IN_PROGRESS), and the specified win_tile.
    """
    size = settings.size if settings.size is not None else 4
    win_tile = settings.win_tile if settings.win_tile is not None else 2048
    try:
        initial_board, initial_score, _ = core.initialize_board(size)
        current_progress = core.determine_game_status(initial_board, win_tile)

        return GameStateData(
            board=initial_board,
            score=initial_score,
            progress=current_progress,
            win_tile=win_tile,
            board_size=size
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Unexpected error in /game/new: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected error occurred during game creation: {str(e)}")


@app.post("/game/move", response_model=MoveResponseData, summary="Make a Move in the Game")
@limiter.limit("100/minute")
async def make_move(request: Request, request_data: MoveRequestData):
    """
    Processes a player's move in the game.

    Requires the current `board` state, `score`, the `direction` of the move,
    and the `win_tile` for this game instance.

    The API will:
    1. Attempt to process the move (slide tiles, merge).
    2. If the move changed the board, add a new random tile (2 or 4).
    3. Determine the new game status (IN_PROGRESS, GAME_WON, GAME_OVER) on the board
       after the new tile.

    Returns the updated game state, whether the move was effective, and an optional message.
    """
    try:
        current_board = core.validate_grid(request_data.board)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid board structure in request: {str(e)}")

    win_tile = request_data.win_tile
    final_board = current_board
    final_score = request_data.score
    message_for_client: Optional[str] = None

    try:
        result = core.apply_move(current_board, request_data.direction)

        if result.moved:
            final_score += result.score_gained
            final_board = core.spawn_random_tile(result.grid)
        else:
            message_for_client = "Move was not effective; board state unchanged by slide."

        current_progress = core.determine_game_status(final_board, win_tile, request_data.keep_playing)

        if current_progress == core.GameProgressState.GAME_WON:
            message_for_client = "Congratulations! You won!"
        elif current_progress == core.GameProgressState.GAME_OVER:
            message_for_client = "Game Over. No more valid moves."

        return MoveResponseData(
            board=[list(row) for row in final_board],
            score=final_score,
            progress=current_progress,
            win_tile=win_tile,
            board_size=len(final_board),
            move_was_effective=result.moved,
            score_gained=result.score_gained,
            merge_count=result.merge_count,
            merged_cells=[list(cell) for cell in result.merged_cells],
            message=message_for_client
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Error processing move: {str(e)}")
    except Exception as e:
        logger.error(f"Unexpected error in /game/move: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected server error occurred while processing the move: {str(e)}")


# The AI endpoints are plain functions so FastAPI runs them in its threadpool
# instead of on the event loop.
@app.post("/ai/move", response_model=AIMoveResponseData, summary="Ask the AI for a Move")
@limiter.limit("100/minute")
def ai_move(request: Request, request_data: AIMoveRequestData):
    """
    Picks a move for the given board with Expectimax at the requested difficulty
    (or the single-ply scorer with `strategy=greedy`). A null direction means the
    game is over. The board is not modified; submit the move to `/game/move`.
    """
    try:
        profile = selector.profile(request_data.difficulty)
        if request_data.strategy == "expectimax":
            result = selector.search(request_data.board, profile)
            return AIMoveResponseData(
                direction=result.best_direction,
                expected_score=result.expected_score if result.best_direction else None,
                search_depth=profile.search_depth
            )
        direction = selector.select_greedy_move(request_data.board, profile)
        return AIMoveResponseData(direction=direction, search_depth=1)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Unexpected error in /ai/move: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected error occurred during the AI search: {str(e)}")


@app.post("/ai/evaluate", response_model=EvaluateResponseData, summary="Score a Board")
@limiter.limit("100/minute")
def evaluate_board(request: Request, request_data: EvaluateRequestData):
    """
    Returns the heuristic value of a board, its raw features, and the valid
    moves ranked by single-ply score (for hint and prediction overlays).
    """
    try:
        grid = core.validate_grid(request_data.board)
        return EvaluateResponseData(
            score=selector.evaluator.evaluate(grid),
            features=feature_breakdown(grid),
            ranked_moves=[
                RankedMoveData(direction=move.direction, score=move.score)
                for move in selector.rank_moves(grid)
            ]
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Unexpected error in /ai/evaluate: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected error occurred during evaluation: {str(e)}")


@app.post("/ai/hint", response_model=HintResponseData, summary="Suggest a Move to the Player")
@limiter.limit("100/minute")
def hint(request: Request, request_data: EvaluateRequestData):
    """Suggests a move using a short sampled look-ahead."""
    try:
        return HintResponseData(direction=selector.suggest_hint(request_data.board))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Unexpected error in /ai/hint: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected error occurred while computing a hint: {str(e)}")
