import sys
from dataclasses import replace
from pathlib import Path

import pytest

LAMBDA_DIR = Path(__file__).resolve().parents[1] / "lambda"
if str(LAMBDA_DIR) not in sys.path:
    sys.path.insert(0, str(LAMBDA_DIR))

from kanban_config import Settings  # noqa: E402
from kanban_errors import ConflictError, NotFoundError  # noqa: E402
from kanban_store import ShortLinkTaken, list_name_key, short_link_key  # noqa: E402


class MemoryStore:
    """In-memory stand-in for KanbanStore with the same conditional-write outcomes."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.boards: dict = {}
        self.lists: dict = {}
        self.tasks: dict = {}
        self.subtasks: dict = {}
        self.memberships: list[tuple[str, str]] = []
        self.uniques: set[str] = set()
        self.users: set[str] = set()
        self.writes: list[str] = []

    # Boards

    def get_board(self, board_id):
        return self.boards.get(board_id)

    def find_board_by_short_link(self, code):
        for board in self.boards.values():
            if board.short_link == code:
                return board
        return None

    def short_link_exists(self, code):
        return short_link_key(code) in self.uniques

    def create_board(self, board, name_key):
        if name_key in self.uniques:
            raise ConflictError("Já existe um quadro com este nome.")
        if short_link_key(board.short_link) in self.uniques:
            raise ShortLinkTaken(f"short link already allocated: {board.short_link}")
        self.uniques.update({name_key, short_link_key(board.short_link)})
        self.boards[board.board_id] = board
        for user_id in [board.owner_id] + [m for m in board.members if m != board.owner_id]:
            self.memberships.append((user_id, board.board_id))
        self.writes.append("create_board")

    def count_user_boards(self, user_id):
        return sum(1 for u, _ in self.memberships if u == user_id)

    def user_board_ids(self, user_id, *, offset, limit):
        ids = [b for u, b in self.memberships if u == user_id]
        return ids[offset : offset + limit]

    def batch_get_boards(self, board_ids):
        return [self.boards[b] for b in board_ids if b in self.boards]

    # Lists

    def get_list(self, list_id):
        return self.lists.get(list_id)

    def query_lists(self, board_id):
        lists = [lst for lst in self.lists.values() if lst.board_id == board_id]
        return sorted(lists, key=lambda lst: (lst.pos, lst.list_id))

    def count_lists(self, board_id):
        return len(self.query_lists(board_id))

    def create_list(self, board_list):
        if board_list.board_id not in self.boards:
            raise NotFoundError("Quadro não encontrado.")
        key = list_name_key(board_list.board_id, board_list.name)
        if key in self.uniques:
            raise ConflictError("Já existe uma lista com este nome neste quadro.")
        self.uniques.add(key)
        self.lists[board_list.list_id] = board_list
        self.writes.append("create_list")

    # Tasks

    def get_task(self, task_id):
        return self.tasks.get(task_id)

    def query_tasks(self, board_id):
        return [t for t in self.tasks.values() if t.board_id == board_id]

    def create_task(self, task):
        if task.list_id not in self.lists:
            raise NotFoundError("Lista não encontrada.")
        self.tasks[task.task_id] = task
        self.writes.append("create_task")

    def move_task(self, task_id, list_id, now):
        task = self.tasks.get(task_id)
        if task is None or task.list_id == list_id:
            return None
        moved = replace(task, list_id=list_id, updated_at=now)
        self.tasks[task_id] = moved
        self.writes.append("move_task")
        return moved

    def set_task_completed(self, task_id, *, expected, value, now):
        task = self.tasks.get(task_id)
        if task is None or task.is_completed != expected:
            return None
        updated = replace(task, is_completed=value, updated_at=now)
        self.tasks[task_id] = updated
        self.writes.append("set_task_completed")
        return updated

    def delete_task(self, task_id):
        if self.tasks.pop(task_id, None) is None:
            return False
        self.writes.append("delete_task")
        return True

    # SubTasks

    def query_subtasks(self, task_id):
        return [s for s in self.subtasks.values() if s.task_id == task_id]

    def delete_subtasks(self, subtask_ids):
        for subtask_id in subtask_ids:
            self.subtasks.pop(subtask_id, None)
        if subtask_ids:
            self.writes.append("delete_subtasks")

    def create_subtask(self, subtask):
        if subtask.task_id not in self.tasks:
            raise NotFoundError("Tarefa não encontrada.")
        self.subtasks[subtask.subtask_id] = subtask
        self.writes.append("create_subtask")

    # Users

    def user_exists(self, user_id):
        return user_id in self.users


@pytest.fixture
def settings():
    return Settings(
        boards_table="KanbanBoards",
        lists_table="KanbanLists",
        tasks_table="KanbanTasks",
        subtasks_table="KanbanSubTasks",
        memberships_table="KanbanMemberships",
        uniques_table="KanbanUniques",
        users_table="KanbanUsers",
        short_link_base="https://kanban.example/b/",
    )


@pytest.fixture
def store(settings):
    return MemoryStore(settings)
