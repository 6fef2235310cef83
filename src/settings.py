# settings.py
# Game constants, heuristic weights and difficulty profiles.
# Weights and profiles are frozen models handed to the evaluator and the
# move selector when they are built; nothing here is mutated during play.

from typing import Dict, List, Mapping, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

# --- Game constants ---
GRID_SIZE = 4
TARGET_VALUE = 2048
SPAWN_FOUR_PROBABILITY = 0.1

# --- AI constants ---
EVALUATION_CACHE_SIZE = 100_000
MAX_SEARCH_DEPTH = 6
ADAPTIVE_HISTORY_SIZE = 20
ADAPTIVE_MIN_MOVES_BETWEEN_CHANGES = 10

LOG_LEVEL_ENV_VAR = "PY2048_LOG_LEVEL"


class EvaluationWeights(BaseModel):
    """Coefficients of the heuristic board evaluation."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    empty_cells: float = Field(default=10.0, description="Favors boards with more empty spaces.")
    smoothness: float = Field(default=0.1, description="Prefers similar adjacent tiles.")
    monotonicity: float = Field(default=1.0, description="Prefers increasing/decreasing sequences.")
    max_value: float = Field(default=1.0, description="Rewards having high-value tiles.")
    position_score: float = Field(default=2.0, description="Favors high-value tiles along the snake path.")
    potential_merges: float = Field(default=5.0, description="Rewards boards with merge opportunities.")
    corner_max: float = Field(default=20.0, description="Bonus for the max value sitting in a corner.")
    trapped_penalty: float = Field(default=10.0, ge=0, description="Penalty for tiles that cannot move.")


class DifficultyProfile(BaseModel):
    """Search strength and pacing of the AI player for one difficulty level."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., description="Difficulty level name.")
    search_depth: int = Field(..., ge=1, le=MAX_SEARCH_DEPTH, description="Expectimax depth in plies.")
    move_interval_ms: int = Field(..., ge=0, description="Pause between consecutive AI moves.")
    thinking_delay_ms: int = Field(..., ge=0, description="Time the AI is shown as thinking.")
    move_weight: float = Field(default=1.0, gt=0, description="Multiplier applied to single-ply move scores.")
    strategic_bonus: bool = Field(default=False, description="Add corner/trap strategy terms to single-ply scores.")


DEFAULT_WEIGHTS = EvaluationWeights()

DIFFICULTY_LEVELS: List[str] = ["easy", "medium", "hard", "expert"]

DIFFICULTY_PROFILES: Dict[str, DifficultyProfile] = {
    "easy": DifficultyProfile(name="easy", search_depth=2, move_interval_ms=300,
                              thinking_delay_ms=1500, move_weight=0.8),
    "medium": DifficultyProfile(name="medium", search_depth=3, move_interval_ms=200,
                                thinking_delay_ms=1000, move_weight=1.0),
    "hard": DifficultyProfile(name="hard", search_depth=4, move_interval_ms=150,
                              thinking_delay_ms=800, move_weight=1.2),
    "expert": DifficultyProfile(name="expert", search_depth=5, move_interval_ms=100,
                                thinking_delay_ms=500, move_weight=1.5, strategic_bonus=True),
}


def get_profile(difficulty: Union[str, int, DifficultyProfile],
                profiles: Mapping[str, DifficultyProfile] = DIFFICULTY_PROFILES) -> DifficultyProfile:
    """
    Resolves a difficulty name, a bare search depth or a profile into a profile.
    Args:
        difficulty: "easy" / "medium" / "hard" / "expert" (any case), an int depth,
                    or an existing DifficultyProfile.
        profiles: The table names are looked up in.
    Returns:
        DifficultyProfile: The matching profile. A bare depth reuses the timings of
                           the profile with that depth, or of the nearest level.
    Raises:
        ValueError: If the name is unknown or the depth is out of range.
    """
    if isinstance(difficulty, DifficultyProfile):
        return difficulty

    if isinstance(difficulty, bool):
        raise ValueError(f"Invalid difficulty: {difficulty!r}")

    if isinstance(difficulty, int):
        if not 1 <= difficulty <= MAX_SEARCH_DEPTH:
            raise ValueError(f"Search depth must be between 1 and {MAX_SEARCH_DEPTH}, got {difficulty}.")
        nearest = min(profiles.values(), key=lambda p: abs(p.search_depth - difficulty))
        if nearest.search_depth == difficulty:
            return nearest
        return nearest.model_copy(update={"name": f"depth-{difficulty}", "search_depth": difficulty})

    key = str(difficulty).strip().lower()
    if key not in profiles:
        raise ValueError(f"Unknown difficulty {difficulty!r}; expected one of {sorted(profiles)}.")
    return profiles[key]


def apply_weight_overrides(weights: EvaluationWeights,
                           overrides: Mapping[str, float]) -> Tuple[EvaluationWeights, List[str]]:
    """
    Builds a new weights object with some coefficients replaced.
    Takes a dictionary of coefficient names and values; unknown names are skipped.
    Returns the new weights and the list of applied names.
    """
    if not overrides:
        return weights, []

    applied = [name for name in EvaluationWeights.model_fields if name in overrides]
    data = weights.model_dump()
    data.update({name: overrides[name] for name in applied})
    # model_copy(update=...) would skip field validation
    return EvaluationWeights.model_validate(data), applied
