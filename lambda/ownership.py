from __future__ import annotations

from kanban_errors import ForbiddenError
from kanban_models import Board

FORBIDDEN_MESSAGE = "Usuário sem permissão para acessar este board."


def is_authorized(board: Board, user_id: str) -> bool:
    user_id = str(user_id or "").strip()
    if not user_id:
        return False
    return board.owner_id == user_id or user_id in board.members


def authorize(board: Board, user_id: str) -> None:
    if not is_authorized(board, user_id):
        raise ForbiddenError(FORBIDDEN_MESSAGE)
