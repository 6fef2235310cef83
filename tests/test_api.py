"""
Tests for the HTTP API, driven through FastAPI's TestClient.
"""

import inspect

import pytest
from fastapi.testclient import TestClient

import core
from api import app

LEFT_COLUMN = [[2, 0, 0, 0], [4, 0, 0, 0], [8, 0, 0, 0], [16, 0, 0, 0]]

STUCK_GRID = [
    [2, 4, 8, 16],
    [32, 64, 128, 256],
    [512, 1024, 2, 4],
    [8, 16, 32, 64],
]


@pytest.fixture
def client():
    return TestClient(app)


def test_new_game(client):
    response = client.post("/game/new", json={})
    assert response.status_code == 200
    data = response.json()
    assert data["board_size"] == 4
    assert data["score"] == 0
    assert data["progress"] == core.GameProgressState.IN_PROGRESS.value
    assert sum(1 for row in data["board"] for v in row if v) == 2


def test_new_game_rejects_tiny_board(client):
    assert client.post("/game/new", json={"size": 1}).status_code == 422


def test_move_merges_and_spawns(client):
    response = client.post("/game/move", json={
        "board": [[2, 2, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]],
        "score": 10,
        "direction": core.DIRECTION.LEFT.value,
        "win_tile": 2048,
    })
    assert response.status_code == 200
    data = response.json()
    assert data["move_was_effective"]
    assert data["score"] == 14
    assert data["score_gained"] == 4
    assert data["merge_count"] == 1
    assert data["merged_cells"] == [[0, 0]]
    assert data["board"][0][0] == 4
    assert sum(1 for row in data["board"] for v in row if v) == 2


def test_ineffective_move(client):
    response = client.post("/game/move", json={
        "board": LEFT_COLUMN,
        "score": 0,
        "direction": core.DIRECTION.LEFT.value,
        "win_tile": 2048,
    })
    data = response.json()
    assert not data["move_was_effective"]
    assert data["board"] == LEFT_COLUMN
    assert data["message"]


def test_move_on_stuck_board_reports_game_over(client):
    response = client.post("/game/move", json={
        "board": STUCK_GRID,
        "score": 0,
        "direction": core.DIRECTION.UP.value,
        "win_tile": 2048,
    })
    data = response.json()
    assert data["progress"] == core.GameProgressState.GAME_OVER.value
    assert not data["move_was_effective"]


@pytest.mark.parametrize("board", [[[2, 3], [0, 0]], [[2, 0, 0], [0, 0]]])
def test_move_rejects_malformed_board(client, board):
    response = client.post("/game/move", json={
        "board": board, "score": 0, "direction": 1, "win_tile": 2048,
    })
    assert response.status_code == 400


def test_ai_move(client):
    response = client.post("/ai/move", json={"board": LEFT_COLUMN, "difficulty": "easy"})
    assert response.status_code == 200
    data = response.json()
    assert data["direction"] == core.DIRECTION.RIGHT.value
    assert data["search_depth"] == 2
    assert data["expected_score"] is not None


def test_ai_move_greedy_and_depth(client):
    greedy = client.post("/ai/move", json={"board": LEFT_COLUMN, "strategy": "greedy"}).json()
    assert greedy["direction"] == core.DIRECTION.RIGHT.value
    assert greedy["search_depth"] == 1

    by_depth = client.post("/ai/move", json={"board": LEFT_COLUMN, "difficulty": 1}).json()
    assert by_depth["search_depth"] == 1


def test_ai_move_at_deepest_search(client):
    board = [
        [2, 4, 8, 16],
        [32, 64, 128, 256],
        [512, 1024, 2, 4],
        [8, 16, 0, 0],
    ]
    response = client.post("/ai/move", json={"board": board, "difficulty": 6})
    assert response.status_code == 200
    data = response.json()
    assert data["search_depth"] == 6
    assert core.DIRECTION(data["direction"]) in core.get_valid_moves(board)


@pytest.mark.parametrize("path", ["/ai/move", "/ai/evaluate", "/ai/hint"])
def test_ai_endpoints_run_off_the_event_loop(path):
    endpoint = next(route.endpoint for route in app.routes if getattr(route, "path", None) == path)
    assert not inspect.iscoroutinefunction(endpoint)


def test_ai_move_game_over(client):
    data = client.post("/ai/move", json={"board": STUCK_GRID, "difficulty": "easy"}).json()
    assert data["direction"] is None
    assert data["expected_score"] is None


def test_ai_move_errors(client):
    assert client.post("/ai/move", json={"board": LEFT_COLUMN, "difficulty": "nightmare"}).status_code == 400
    assert client.post("/ai/move", json={"board": LEFT_COLUMN, "strategy": "random"}).status_code == 422


def test_evaluate(client):
    response = client.post("/ai/evaluate", json={"board": [[4, 0, 0, 0], [0] * 4, [0] * 4, [0] * 4]})
    assert response.status_code == 200
    data = response.json()
    assert data["score"] == pytest.approx(238)
    assert data["features"]["empty_cells"] == 15
    assert [m["direction"] for m in data["ranked_moves"]]


def test_hint(client):
    data = client.post("/ai/hint", json={"board": LEFT_COLUMN}).json()
    assert data["direction"] == core.DIRECTION.RIGHT.value
    assert client.post("/ai/hint", json={"board": [[3]]}).status_code == 400
