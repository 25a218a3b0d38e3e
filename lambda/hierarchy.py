from __future__ import annotations

from typing import Any

from kanban_config import Settings
from kanban_errors import InvalidError, NotFoundError, service_boundary
from kanban_ids import is_entity_id
from kanban_models import Board, Task
from kanban_store import KanbanStore
from page_meta import Page, compute_page_meta, page_options
from shortlink import is_short_link

BOARD_NOT_FOUND = "Quadro não encontrado."
TASK_NOT_FOUND = "Tarefa não encontrada."


class HierarchyAggregator:
    """Stitches Boards, Lists, Tasks and SubTasks together by foreign key.

    Children are separate items (not embedded in the parent) because they are
    created and queried on their own; each view is one primary read followed
    by dependent scans keyed by the resolved parent id, with no isolation
    across those reads.
    """

    def __init__(self, store: KanbanStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    def resolve_board(self, board_ref: str) -> Board:
        ref = str(board_ref or "").strip()
        if not ref:
            raise NotFoundError(BOARD_NOT_FOUND)
        # Primary key first, short link as the fallback lookup key.
        board = self.store.get_board(ref) if is_entity_id(ref) else None
        if board is None and is_short_link(ref):
            board = self.store.find_board_by_short_link(ref)
        if board is None:
            raise NotFoundError(BOARD_NOT_FOUND)
        return board

    @service_boundary("fetch board")
    def fetch_board(self, board_ref: str) -> dict[str, Any]:
        board = self.resolve_board(board_ref)
        view = board.to_json(short_link_base=self.settings.short_link_base)
        view["lists"] = [lst.to_json() for lst in self.store.query_lists(board.board_id)]
        view["tasks"] = [task.to_json() for task in self.store.query_tasks(board.board_id)]
        return view

    @service_boundary("fetch boards page")
    def fetch_boards_page(self, user_id: str, raw_page: Any = None, raw_limit: Any = None) -> Page:
        user_id = str(user_id or "").strip()
        if not user_id:
            raise InvalidError("ID do usuário é obrigatório.")
        options = page_options(raw_page, raw_limit, self.settings)

        # Count over the same filter, independent of the page window.
        item_count = self.store.count_user_boards(user_id)
        board_ids = self.store.user_board_ids(user_id, offset=options.offset, limit=options.limit)
        boards = self.store.batch_get_boards(board_ids) if board_ids else []

        items: list[dict[str, Any]] = []
        for board in boards:
            view = board.to_json(short_link_base=self.settings.short_link_base)
            view.pop("members", None)
            items.append(view)
        return Page(items=items, meta=compute_page_meta(item_count, options.page, options.limit))

    def require_task(self, task_id: str) -> Task:
        task_id = str(task_id or "").strip()
        if not task_id:
            raise InvalidError("O ID da tarefa é obrigatório.")
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError(TASK_NOT_FOUND)
        return task

    @service_boundary("fetch task")
    def fetch_task_with_subtasks(self, task_id: str) -> dict[str, Any]:
        task = self.require_task(task_id)
        view = task.to_json()
        view["subtasks"] = [s.to_json() for s in self.store.query_subtasks(task.task_id)]
        return view
