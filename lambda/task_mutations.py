from __future__ import annotations

from hierarchy import BOARD_NOT_FOUND, TASK_NOT_FOUND, HierarchyAggregator
from kanban_errors import ConflictError, InvalidError, NotFoundError, service_boundary
from kanban_log import now_iso
from kanban_models import Board, Task
from kanban_store import KanbanStore
from ownership import authorize

MAX_TOGGLE_ATTEMPTS = 5

LIST_NOT_FOUND = "Lista não encontrada."
SAME_LIST = "A tarefa já está nesta lista."


class TaskMutationService:
    """State transitions on a single Task: list axis, completion axis, delete."""

    def __init__(self, store: KanbanStore, hierarchy: HierarchyAggregator) -> None:
        self.store = store
        self.hierarchy = hierarchy

    def _authorized_board(self, task: Task, acting_user_id: str) -> Board:
        board = self.store.get_board(task.board_id)
        if board is None:
            raise NotFoundError(BOARD_NOT_FOUND)
        authorize(board, acting_user_id)
        return board

    @service_boundary("change task list")
    def change_list(self, task_id: str, list_id: str) -> Task:
        list_id = str(list_id or "").strip()
        if not list_id:
            raise InvalidError("A tarefa deve estar associada a uma lista.")
        task = self.hierarchy.require_task(task_id)

        target = self.store.get_list(list_id)
        if target is None:
            raise NotFoundError(LIST_NOT_FOUND)
        if target.list_id == task.list_id:
            raise ConflictError(SAME_LIST)
        if target.board_id != task.board_id:
            raise InvalidError("A lista pertence a outro quadro.")

        moved = self.store.move_task(task.task_id, target.list_id, now_iso())
        if moved is None:
            # Lost a race: the task was deleted or already moved to this list.
            if self.store.get_task(task.task_id) is None:
                raise NotFoundError(TASK_NOT_FOUND)
            raise ConflictError(SAME_LIST)
        return moved

    @service_boundary("toggle task status")
    def toggle_status(self, task_id: str, acting_user_id: str) -> Task:
        task = self.hierarchy.require_task(task_id)
        self._authorized_board(task, acting_user_id)

        current = task
        for _ in range(MAX_TOGGLE_ATTEMPTS):
            updated = self.store.set_task_completed(
                current.task_id,
                expected=current.is_completed,
                value=not current.is_completed,
                now=now_iso(),
            )
            if updated is not None:
                return updated
            # A concurrent toggle won; flip from the value it stored.
            reread = self.store.get_task(current.task_id)
            if reread is None:
                raise NotFoundError(TASK_NOT_FOUND)
            current = reread
        raise ConflictError("A tarefa foi alterada concorrentemente. Tente novamente.")

    @service_boundary("delete task")
    def delete_task(self, task_id: str, acting_user_id: str) -> int:
        task = self.hierarchy.require_task(task_id)
        self._authorized_board(task, acting_user_id)

        # Children first, so a failure never leaves orphaned subtasks behind.
        subtask_ids = [s.subtask_id for s in self.store.query_subtasks(task.task_id)]
        self.store.delete_subtasks(subtask_ids)
        if not self.store.delete_task(task.task_id):
            raise NotFoundError(TASK_NOT_FOUND)
        return len(subtask_ids)
