import pytest

from kanban_errors import ForbiddenError
from kanban_models import Board
from ownership import FORBIDDEN_MESSAGE, authorize, is_authorized

BOARD = Board(board_id="b1", name="Sprint 1", owner_id="u1", short_link="abcd1234", members=["u2"])


@pytest.mark.parametrize("user_id,expected", [("u1", True), ("u2", True), ("u3", False), ("", False)])
def test_is_authorized(user_id, expected):
    assert is_authorized(BOARD, user_id) is expected


def test_authorize_raises_forbidden_for_outsider():
    with pytest.raises(ForbiddenError) as exc:
        authorize(BOARD, "u3")

    assert exc.value.message == FORBIDDEN_MESSAGE
    assert exc.value.status_code == 403


def test_authorize_passes_for_member():
    authorize(BOARD, "u2")
