# cli_driver.py
# This file is intended to be run to play the 2048 game on the CLI, either by
# hand or by letting the Expectimax AI play at a chosen difficulty.

from typing import Optional, Sequence, Tuple
import argparse
import logging
import os
import random
import time

from core import (
    DIRECTION,
    GameProgressState,
    apply_move,
    determine_game_status,
    initialize_board,
    spawn_random_tile,
)
from heuristics import Evaluator
from move_selector import AdaptiveDifficulty, MoveSelector
from settings import (
    DEFAULT_WEIGHTS,
    DIFFICULTY_LEVELS,
    GRID_SIZE,
    LOG_LEVEL_ENV_VAR,
    TARGET_VALUE,
    apply_weight_overrides,
)

logger = logging.getLogger(__name__)

KEY_TO_DIRECTION = {'W': DIRECTION.UP, 'A': DIRECTION.LEFT, 'S': DIRECTION.DOWN, 'D': DIRECTION.RIGHT}


def _weight_override(text: str) -> Tuple[str, float]:
    name, sep, value = text.partition('=')
    if not sep:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    try:
        return name.strip(), float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"weight {name!r} needs a number, got {value!r}")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="2048 - play by hand or watch the Expectimax AI")
    parser.add_argument('--ai', choices=DIFFICULTY_LEVELS, default=None,
                        help="Let the AI play at this difficulty")
    parser.add_argument('--adaptive', action='store_true',
                        help="Adjust the AI difficulty from recent performance (AI mode only)")
    parser.add_argument('--best-score', type=int, default=0,
                        help="Best score of earlier games, used by --adaptive")
    parser.add_argument('--size', type=int, default=GRID_SIZE,
                        help="Dimension of the N x N board")
    parser.add_argument('--win-tile', type=int, default=TARGET_VALUE,
                        help="Tile value that wins the game")
    parser.add_argument('--keep-playing', action='store_true',
                        help="Continue after reaching the win tile")
    parser.add_argument('--seed', type=int, default=None,
                        help="Seed for tile spawns and AI fallbacks")
    parser.add_argument('--no-delay', action='store_true',
                        help="Do not pause between AI moves")
    parser.add_argument('--weight', type=_weight_override, action='append', default=[],
                        metavar='NAME=VALUE',
                        help="Override one evaluation weight, e.g. smoothness=0.5 (repeatable)")
    args = parser.parse_args(argv)

    overrides = dict(args.weight)
    try:
        args.weights, applied = apply_weight_overrides(DEFAULT_WEIGHTS, overrides)
    except ValueError as e:
        parser.error(f"invalid --weight: {e}")
    unknown = sorted(set(overrides) - set(applied))
    if unknown:
        parser.error(f"unknown --weight name(s): {', '.join(unknown)}")
    return args


def main(argv: Optional[Sequence[str]] = None):
    args = parse_args(argv)
    logging.basicConfig(
        level=os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.weight:
        logger.info("Evaluation weights overridden: %s", dict(args.weight))
    rng = random.Random(args.seed)

    # 1. Initialize game
    current_board, current_score, current_progress = initialize_board(args.size, rng)
    display_board_state(current_board, current_score, current_progress)

    selector = MoveSelector(Evaluator(args.weights)) if args.ai else None
    adaptive = AdaptiveDifficulty(base_level=args.ai) if args.ai and args.adaptive else None
    difficulty = args.ai
    move_count = 0

    # 2. Game Loop
    while current_progress == GameProgressState.IN_PROGRESS:
        if selector:
            chosen_direction = selector.choose_move(current_board, difficulty, rng)
            if chosen_direction is None:
                break
            print(f"AI ({difficulty}) plays {chosen_direction.name}")
        else:
            move_input = input("Enter move (W/A/S/D for Up/Left/Down/Right, Q to quit): ").upper()
            if move_input == 'Q':
                print("Quitting game.")
                break
            chosen_direction = KEY_TO_DIRECTION.get(move_input)
            if not chosen_direction:
                print("Invalid input. Use W, A, S, D.")
                continue

        # 3. Process the move
        result = apply_move(current_board, chosen_direction)

        if result.moved:
            current_score += result.score_gained
            move_count += 1

            # 4. Add a new random tile, then check the board that includes it
            current_board = spawn_random_tile(result.grid, rng)
            current_progress = determine_game_status(current_board, args.win_tile, args.keep_playing)
        else:
            print("Move did not change the board. Try a different direction.")

        display_board_state(current_board, current_score, current_progress)

        if adaptive:
            difficulty = adaptive.record(current_score, args.best_score, move_count,
                                         current_progress == GameProgressState.GAME_OVER)
        if selector and not args.no_delay:
            interval = adaptive.move_interval_ms() if adaptive else selector.profile(difficulty).move_interval_ms
            time.sleep(interval / 1000.0)

    # 5. Game Ended
    logger.info("Game finished after %d moves with score %d (%s)", move_count, current_score, current_progress.name)
    print("\n--- Final Board State ---")
    display_board_state(current_board, current_score, current_progress)
    if current_progress == GameProgressState.GAME_WON:
        print(f"Congratulations! You reached the {args.win_tile} tile!")
    elif current_progress == GameProgressState.GAME_OVER:
        print("No more moves possible. Better luck next time!")
    return current_score


# --- Display Function (Example of external usage) ---
def display_board_state(board: Sequence[Sequence[int]], score: int, progress: GameProgressState):
    """Prints the board, score, and game status to the console."""
    print(f"\nScore: {score}")
    status_message = {
        GameProgressState.IN_PROGRESS: f"Status: {progress.name}",
        GameProgressState.GAME_WON: "YOU WON!",
        GameProgressState.GAME_OVER: "GAME OVER!"
    }
    print(status_message.get(progress, f"Status: {progress.name} (Unknown)"))

    for row in board:
        print("\t".join(map(str, row)))
    print("-" * (len(board) * 6))


if __name__ == "__main__":
    main()
