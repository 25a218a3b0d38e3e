from __future__ import annotations

import time
from typing import Any, Callable

import boto3
from boto3.dynamodb.conditions import Key
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import ClientError

from kanban_config import Settings
from kanban_errors import ConflictError, InternalError, NotFoundError
from kanban_models import Board, BoardList, SubTask, Task

SHORT_LINK_INDEX = "ShortLinkIndex"
LISTS_BOARD_INDEX = "BoardIndex"
TASKS_BOARD_INDEX = "BoardIndex"
SUBTASKS_TASK_INDEX = "TaskIndex"

MAX_TRANSACT_ITEMS = 100
MAX_BATCH_GET_KEYS = 100
MAX_UNPROCESSED_ROUNDS = 5
UNPROCESSED_BACKOFF_SECONDS = 0.05

_ddb_resource: Any | None = None
_ddb_client: Any | None = None
_serializer = TypeSerializer()


def _ddb() -> Any:
    global _ddb_resource
    if _ddb_resource is None:
        _ddb_resource = boto3.resource("dynamodb")
    return _ddb_resource


def _ddb_low_level() -> Any:
    # Transactions go through the low-level client with typed attribute values.
    global _ddb_client
    if _ddb_client is None:
        _ddb_client = boto3.client("dynamodb")
    return _ddb_client


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code") or "")


def _cancelled_indexes(exc: ClientError) -> list[int]:
    """Positions of transaction items whose condition failed."""
    reasons = exc.response.get("CancellationReasons") or []
    return [i for i, r in enumerate(reasons) if isinstance(r, dict) and r.get("Code") == "ConditionalCheckFailed"]


def _typed(item: dict[str, Any]) -> dict[str, Any]:
    return {k: _serializer.serialize(v) for k, v in item.items()}


def board_name_key(name: str, owner_id: str, scope: str) -> str:
    if scope == "owner":
        return f"board-name#{owner_id}#{name}"
    return f"board-name#{name}"


def list_name_key(board_id: str, name: str) -> str:
    return f"list-name#{board_id}#{name}"


def short_link_key(code: str) -> str:
    return f"short-link#{code}"


class ShortLinkTaken(ConflictError):
    pass


class DeadlineExceeded(InternalError):
    pass


class Deadline:
    """Stops persistence calls once the invocation is about to time out."""

    def __init__(self, remaining_ms: Callable[[], int] | None = None, margin_ms: int = 0) -> None:
        self._remaining_ms = remaining_ms
        self._margin_ms = margin_ms

    @classmethod
    def from_context(cls, context: Any, margin_ms: int) -> "Deadline":
        remaining = getattr(context, "get_remaining_time_in_millis", None)
        return cls(remaining if callable(remaining) else None, margin_ms)

    def check(self) -> None:
        if self._remaining_ms is None:
            return
        if int(self._remaining_ms()) < self._margin_ms:
            raise DeadlineExceeded("request deadline exceeded")


class KanbanStore:
    def __init__(
        self,
        settings: Settings,
        *,
        deadline: Deadline | None = None,
        resource: Any | None = None,
        client: Any | None = None,
    ) -> None:
        self.settings = settings
        self._deadline = deadline or Deadline()
        self._resource = resource
        self._client = client

    def _table(self, name: str) -> Any:
        self._deadline.check()
        return (self._resource or _ddb()).Table(name)

    def _transact(self, items: list[dict[str, Any]]) -> None:
        self._deadline.check()
        if len(items) > MAX_TRANSACT_ITEMS:
            raise ValueError(f"transaction exceeds {MAX_TRANSACT_ITEMS} items")
        (self._client or _ddb_low_level()).transact_write_items(TransactItems=items)

    def _query_all(self, table_name: str, **kwargs: Any) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        start_key: dict[str, Any] | None = None
        while True:
            if start_key:
                kwargs["ExclusiveStartKey"] = start_key
            page = self._table(table_name).query(**kwargs)
            out.extend(i for i in page.get("Items", []) or [] if isinstance(i, dict))
            start_key = page.get("LastEvaluatedKey")
            if not start_key:
                return out

    def _count(self, table_name: str, **kwargs: Any) -> int:
        total = 0
        start_key: dict[str, Any] | None = None
        while True:
            if start_key:
                kwargs["ExclusiveStartKey"] = start_key
            page = self._table(table_name).query(Select="COUNT", **kwargs)
            total += int(page.get("Count") or 0)
            start_key = page.get("LastEvaluatedKey")
            if not start_key:
                return total

    def _get(self, table_name: str, key: dict[str, Any]) -> dict[str, Any] | None:
        # Existence and authorization checks must see writes from earlier requests.
        resp = self._table(table_name).get_item(Key=key, ConsistentRead=True)
        item = resp.get("Item") if isinstance(resp, dict) else None
        return item if isinstance(item, dict) and item else None

    def _unique_put(self, unique_key: str, kind: str, ref: str, now: str) -> dict[str, Any]:
        return {
            "Put": {
                "TableName": self.settings.uniques_table,
                "Item": _typed({"uniqueKey": unique_key, "kind": kind, "ref": ref, "createdAt": now}),
                "ConditionExpression": "attribute_not_exists(uniqueKey)",
            }
        }

    # Boards

    def get_board(self, board_id: str) -> Board | None:
        item = self._get(self.settings.boards_table, {"boardId": board_id})
        return Board.from_item(item) if item else None

    def find_board_by_short_link(self, code: str) -> Board | None:
        page = self._table(self.settings.boards_table).query(
            IndexName=SHORT_LINK_INDEX,
            KeyConditionExpression=Key("shortLink").eq(code),
            Limit=1,
        )
        items = page.get("Items", []) or []
        return Board.from_item(items[0]) if items else None

    def short_link_exists(self, code: str) -> bool:
        return self._get(self.settings.uniques_table, {"uniqueKey": short_link_key(code)}) is not None

    def create_board(self, board: Board, name_key: str) -> None:
        member_ids = [board.owner_id] + [m for m in board.members if m != board.owner_id]
        items: list[dict[str, Any]] = [
            {
                "Put": {
                    "TableName": self.settings.boards_table,
                    "Item": _typed(board.to_item()),
                    "ConditionExpression": "attribute_not_exists(boardId)",
                }
            },
            self._unique_put(name_key, "board-name", board.board_id, board.created_at),
            self._unique_put(short_link_key(board.short_link), "short-link", board.board_id, board.created_at),
        ]
        for user_id in member_ids:
            items.append(
                {
                    "Put": {
                        "TableName": self.settings.memberships_table,
                        "Item": _typed(
                            {
                                "userId": user_id,
                                "boardId": board.board_id,
                                "role": "owner" if user_id == board.owner_id else "member",
                                "createdAt": board.created_at,
                            }
                        ),
                    }
                }
            )
        try:
            self._transact(items)
        except ClientError as e:
            if _error_code(e) != "TransactionCanceledException":
                raise
            failed = _cancelled_indexes(e)
            if 1 in failed:
                raise ConflictError("Já existe um quadro com este nome.") from e
            if 2 in failed:
                raise ShortLinkTaken(f"short link already allocated: {board.short_link}") from e
            raise

    def count_user_boards(self, user_id: str) -> int:
        return self._count(
            self.settings.memberships_table,
            KeyConditionExpression=Key("userId").eq(user_id),
        )

    def user_board_ids(self, user_id: str, *, offset: int, limit: int) -> list[str]:
        out: list[str] = []
        skipped = 0
        start_key: dict[str, Any] | None = None
        while True:
            kwargs: dict[str, Any] = {
                "KeyConditionExpression": Key("userId").eq(user_id),
                "ProjectionExpression": "boardId",
            }
            if start_key:
                kwargs["ExclusiveStartKey"] = start_key
            page = self._table(self.settings.memberships_table).query(**kwargs)
            for item in page.get("Items", []) or []:
                board_id = str(item.get("boardId") or "").strip()
                if not board_id:
                    continue
                if skipped < offset:
                    skipped += 1
                    continue
                out.append(board_id)
                if len(out) >= limit:
                    return out
            start_key = page.get("LastEvaluatedKey")
            if not start_key:
                return out

    def batch_get_boards(self, board_ids: list[str]) -> list[Board]:
        table_name = self.settings.boards_table
        found: dict[str, Board] = {}
        for i in range(0, len(board_ids), MAX_BATCH_GET_KEYS):
            request: dict[str, Any] = {
                table_name: {"Keys": [{"boardId": b} for b in board_ids[i : i + MAX_BATCH_GET_KEYS]]}
            }
            for attempt in range(MAX_UNPROCESSED_ROUNDS):
                if attempt:
                    # Throttled keys: back off before asking again.
                    time.sleep(UNPROCESSED_BACKOFF_SECONDS * (2 ** (attempt - 1)))
                self._deadline.check()
                resp = (self._resource or _ddb()).batch_get_item(RequestItems=request)
                for item in (resp.get("Responses") or {}).get(table_name, []) or []:
                    board = Board.from_item(item)
                    found[board.board_id] = board
                request = resp.get("UnprocessedKeys") or {}
                if not request:
                    break
            if request:
                raise InternalError("batch_get_item left unprocessed keys")
        # Keep the membership (creation) order.
        return [found[b] for b in board_ids if b in found]

    # Lists

    def get_list(self, list_id: str) -> BoardList | None:
        item = self._get(self.settings.lists_table, {"listId": list_id})
        return BoardList.from_item(item) if item else None

    def query_lists(self, board_id: str) -> list[BoardList]:
        items = self._query_all(
            self.settings.lists_table,
            IndexName=LISTS_BOARD_INDEX,
            KeyConditionExpression=Key("boardId").eq(board_id),
        )
        lists = [BoardList.from_item(i) for i in items]
        return sorted(lists, key=lambda lst: (lst.pos, lst.list_id))

    def count_lists(self, board_id: str) -> int:
        return self._count(
            self.settings.lists_table,
            IndexName=LISTS_BOARD_INDEX,
            KeyConditionExpression=Key("boardId").eq(board_id),
        )

    def create_list(self, board_list: BoardList) -> None:
        items = [
            {
                "Put": {
                    "TableName": self.settings.lists_table,
                    "Item": _typed(board_list.to_item()),
                    "ConditionExpression": "attribute_not_exists(listId)",
                }
            },
            self._unique_put(
                list_name_key(board_list.board_id, board_list.name),
                "list-name",
                board_list.list_id,
                board_list.created_at,
            ),
            {
                "ConditionCheck": {
                    "TableName": self.settings.boards_table,
                    "Key": _typed({"boardId": board_list.board_id}),
                    "ConditionExpression": "attribute_exists(boardId)",
                }
            },
        ]
        try:
            self._transact(items)
        except ClientError as e:
            if _error_code(e) != "TransactionCanceledException":
                raise
            failed = _cancelled_indexes(e)
            if 2 in failed:
                raise NotFoundError("Quadro não encontrado.") from e
            if 1 in failed:
                raise ConflictError("Já existe uma lista com este nome neste quadro.") from e
            raise

    # Tasks

    def get_task(self, task_id: str) -> Task | None:
        item = self._get(self.settings.tasks_table, {"taskId": task_id})
        return Task.from_item(item) if item else None

    def query_tasks(self, board_id: str) -> list[Task]:
        items = self._query_all(
            self.settings.tasks_table,
            IndexName=TASKS_BOARD_INDEX,
            KeyConditionExpression=Key("boardId").eq(board_id),
        )
        return [Task.from_item(i) for i in items]

    def create_task(self, task: Task) -> None:
        items = [
            {
                "Put": {
                    "TableName": self.settings.tasks_table,
                    "Item": _typed(task.to_item()),
                    "ConditionExpression": "attribute_not_exists(taskId)",
                }
            },
            {
                "ConditionCheck": {
                    "TableName": self.settings.lists_table,
                    "Key": _typed({"listId": task.list_id}),
                    "ConditionExpression": "attribute_exists(listId)",
                }
            },
        ]
        try:
            self._transact(items)
        except ClientError as e:
            if _error_code(e) == "TransactionCanceledException" and 1 in _cancelled_indexes(e):
                raise NotFoundError("Lista não encontrada.") from e
            raise

    def move_task(self, task_id: str, list_id: str, now: str) -> Task | None:
        """Returns None when the task is gone or already sits in ``list_id``."""
        try:
            out = self._table(self.settings.tasks_table).update_item(
                Key={"taskId": task_id},
                UpdateExpression="SET listId = :listId, updatedAt = :now",
                ConditionExpression="attribute_exists(taskId) AND listId <> :listId",
                ExpressionAttributeValues={":listId": list_id, ":now": now},
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                return None
            raise
        return Task.from_item(out.get("Attributes") or {})

    def set_task_completed(self, task_id: str, *, expected: bool, value: bool, now: str) -> Task | None:
        """Compare-and-set on isCompleted; None when the stored value is no longer ``expected``."""
        try:
            out = self._table(self.settings.tasks_table).update_item(
                Key={"taskId": task_id},
                UpdateExpression="SET isCompleted = :value, updatedAt = :now",
                ConditionExpression="attribute_exists(taskId) AND isCompleted = :expected",
                ExpressionAttributeValues={":value": value, ":expected": expected, ":now": now},
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                return None
            raise
        return Task.from_item(out.get("Attributes") or {})

    def delete_task(self, task_id: str) -> bool:
        try:
            self._table(self.settings.tasks_table).delete_item(
                Key={"taskId": task_id},
                ConditionExpression="attribute_exists(taskId)",
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                return False
            raise
        return True

    # SubTasks

    def query_subtasks(self, task_id: str) -> list[SubTask]:
        items = self._query_all(
            self.settings.subtasks_table,
            IndexName=SUBTASKS_TASK_INDEX,
            KeyConditionExpression=Key("taskId").eq(task_id),
        )
        return [SubTask.from_item(i) for i in items]

    def delete_subtasks(self, subtask_ids: list[str]) -> None:
        if not subtask_ids:
            return
        with self._table(self.settings.subtasks_table).batch_writer() as batch:
            for subtask_id in subtask_ids:
                batch.delete_item(Key={"subTaskId": subtask_id})

    def create_subtask(self, subtask: SubTask) -> None:
        items = [
            {
                "Put": {
                    "TableName": self.settings.subtasks_table,
                    "Item": _typed(subtask.to_item()),
                    "ConditionExpression": "attribute_not_exists(subTaskId)",
                }
            },
            {
                "ConditionCheck": {
                    "TableName": self.settings.tasks_table,
                    "Key": _typed({"taskId": subtask.task_id}),
                    "ConditionExpression": "attribute_exists(taskId)",
                }
            },
        ]
        try:
            self._transact(items)
        except ClientError as e:
            if _error_code(e) == "TransactionCanceledException" and 1 in _cancelled_indexes(e):
                raise NotFoundError("Tarefa não encontrada.") from e
            raise

    # Users (external, read-only)

    def user_exists(self, user_id: str) -> bool:
        return self._get(self.settings.users_table, {"sub": user_id}) is not None
