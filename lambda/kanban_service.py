from __future__ import annotations

from typing import Any

from kanban_config import Settings
from kanban_errors import GenerationExhausted, InvalidError, NotFoundError, service_boundary
from kanban_ids import new_entity_id
from kanban_log import now_iso
from kanban_models import Board, BoardList, ListLimits, SubTask, Task, str_list
from kanban_store import KanbanStore, ShortLinkTaken, board_name_key
from shortlink import generate_short_link

MAX_BOARD_MEMBERS = 90
MAX_SHORT_LINK_WRITES = 3
MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 500


def _required(payload: dict[str, Any], key: str, message: str) -> str:
    value = str(payload.get(key) or "").strip()
    if not value:
        raise InvalidError(message)
    return value


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _optional_int(payload: dict[str, Any], key: str) -> int | None:
    value = payload.get(key)
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidError(f"{key} deve ser um número inteiro.") from None


def _check_length(value: str | None, limit: int, field: str) -> None:
    if value is not None and len(value) > limit:
        raise InvalidError(f"{field} pode ter no máximo {limit} caracteres.")


class KanbanService:
    """Creation operations. Re-checks only domain invariants: parents, uniqueness."""

    def __init__(self, store: KanbanStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    def _require_users(self, user_ids: list[str]) -> None:
        for user_id in user_ids:
            if not self.store.user_exists(user_id):
                raise NotFoundError(f"Usuário com ID {user_id} não encontrado")

    @service_boundary("create board")
    def create_board(self, payload: dict[str, Any], owner_id: str) -> Board:
        name = _required(payload, "name", "O nome do quadro é obrigatório.")
        owner_id = str(owner_id or "").strip()
        if not owner_id:
            raise InvalidError("O ID do dono do board é obrigatório.")
        description = _optional_str(payload, "description")
        _check_length(name, MAX_NAME_LENGTH, "O nome")
        _check_length(description, MAX_DESCRIPTION_LENGTH, "A descrição")
        members = str_list(payload.get("members"))
        if len(members) > MAX_BOARD_MEMBERS:
            raise InvalidError(f"Um quadro pode ter no máximo {MAX_BOARD_MEMBERS} membros.")

        name_key = board_name_key(name, owner_id, self.settings.board_name_scope)
        attempts = 0
        while True:
            now = now_iso()
            board = Board(
                board_id=new_entity_id(),
                name=name,
                owner_id=owner_id,
                short_link=generate_short_link(
                    self.store.short_link_exists,
                    max_attempts=self.settings.short_link_max_attempts,
                ),
                description=description,
                members=members,
                is_private=bool(payload.get("is_private", False)),
                created_at=now,
                updated_at=now,
            )
            try:
                # Name and short-link uniqueness are enforced by the write itself.
                self.store.create_board(board, name_key)
                return board
            except ShortLinkTaken as exc:
                # Another board took the token between the check and the write.
                attempts += 1
                if attempts >= MAX_SHORT_LINK_WRITES:
                    raise GenerationExhausted("could not persist a unique short link") from exc

    @service_boundary("create list")
    def create_list(self, payload: dict[str, Any]) -> BoardList:
        name = _required(payload, "name", "O nome da lista é obrigatório.")
        board_id = _required(payload, "id_board", "A lista deve estar associada a um quadro.")
        _check_length(name, MAX_NAME_LENGTH, "O nome")

        if self.store.get_board(board_id) is None:
            raise NotFoundError("Quadro não encontrado.")

        pos = _optional_int(payload, "pos")
        if pos is None:
            pos = self.store.count_lists(board_id)
        now = now_iso()
        board_list = BoardList(
            list_id=new_entity_id(),
            board_id=board_id,
            name=name,
            pos=pos,
            closed=bool(payload.get("closed", False)),
            color=_optional_str(payload, "color"),
            soft_limit=_optional_int(payload, "soft_limit"),
            subscribed=bool(payload.get("subscribed", False)),
            limits=ListLimits.from_value(payload.get("limits")),
            created_at=now,
            updated_at=now,
        )
        self.store.create_list(board_list)
        return board_list

    @service_boundary("create task")
    def create_task(self, payload: dict[str, Any]) -> Task:
        title = _required(payload, "title", "O título da tarefa é obrigatório.")
        list_id = _required(payload, "list_id", "A tarefa deve estar associada a uma lista.")
        description = _optional_str(payload, "description") or ""
        _check_length(title, MAX_NAME_LENGTH, "O título")
        _check_length(description, MAX_DESCRIPTION_LENGTH, "A descrição")

        board_list = self.store.get_list(list_id)
        if board_list is None:
            raise NotFoundError("Lista não encontrada.")
        users_reminder = str_list(payload.get("users_reminder"))
        self._require_users(users_reminder)

        now = now_iso()
        task = Task(
            task_id=new_entity_id(),
            # Always derived from the list; callers never pick the board.
            board_id=board_list.board_id,
            list_id=board_list.list_id,
            title=title,
            description=description,
            start_date=_optional_str(payload, "start_date"),
            due_date=_optional_str(payload, "due_date"),
            due_reminder=_optional_str(payload, "due_reminder"),
            labels=str_list(payload.get("labels")),
            users_reminder=users_reminder,
            short_link=_optional_str(payload, "short_link"),
            short_url=_optional_str(payload, "short_url"),
            created_at=now,
            updated_at=now,
        )
        self.store.create_task(task)
        return task

    @service_boundary("create subtask")
    def create_subtask(self, payload: dict[str, Any]) -> SubTask:
        title = _required(payload, "title", "O título da subtarefa é obrigatório.")
        task_id = _required(payload, "task_id", "A subtarefa deve estar associada a uma tarefa.")
        description = _optional_str(payload, "description") or ""
        _check_length(title, MAX_NAME_LENGTH, "O título")
        _check_length(description, MAX_DESCRIPTION_LENGTH, "A descrição")

        if self.store.get_task(task_id) is None:
            raise NotFoundError("Tarefa não encontrada.")
        users_reminder = str_list(payload.get("users_reminder"))
        self._require_users(users_reminder)

        now = now_iso()
        subtask = SubTask(
            subtask_id=new_entity_id(),
            task_id=task_id,
            title=title,
            description=description,
            start_date=_optional_str(payload, "start_date"),
            due_date=_optional_str(payload, "due_date"),
            due_reminder=_optional_str(payload, "due_reminder"),
            users_reminder=users_reminder,
            created_at=now,
            updated_at=now,
        )
        self.store.create_subtask(subtask)
        return subtask
