from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_OPEN_PER_LIST = {"status": "ok", "disable_at": 5000, "warn_at": 4000}
DEFAULT_TOTAL_PER_LIST = {"status": "ok", "disable_at": 1000000, "warn_at": 800000}


def _str(item: dict[str, Any], key: str, default: str = "") -> str:
    val = item.get(key)
    return str(val) if val is not None else default


def _opt_str(item: dict[str, Any], key: str) -> str | None:
    val = item.get(key)
    if val is None or val == "":
        return None
    return str(val)


def _int(item: dict[str, Any], key: str, default: int = 0) -> int:
    # DynamoDB numbers come back as Decimal.
    val = item.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except (TypeError, ValueError):
        return default


def _opt_int(item: dict[str, Any], key: str) -> int | None:
    if item.get(key) is None:
        return None
    return _int(item, key)


def _bool(item: dict[str, Any], key: str, default: bool = False) -> bool:
    val = item.get(key)
    if val is None:
        return default
    return bool(val)


def str_list(values: Any) -> list[str]:
    """Ordered, de-duplicated, non-empty strings."""
    if not isinstance(values, (list, tuple, set)):
        return []
    out: list[str] = []
    seen: set[str] = set()
    for value in values:
        s = str(value).strip()
        if not s or s in seen:
            continue
        seen.add(s)
        out.append(s)
    return out


def _drop_none(item: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in item.items() if v is not None}


@dataclass(frozen=True)
class Board:
    board_id: str
    name: str
    owner_id: str
    short_link: str
    description: str | None = None
    members: list[str] = field(default_factory=list)
    is_private: bool = False
    archived: bool = False
    created_at: str = ""
    updated_at: str = ""

    @property
    def member_qty(self) -> int:
        return len(self.members)

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Board":
        return cls(
            board_id=_str(item, "boardId"),
            name=_str(item, "name"),
            owner_id=_str(item, "ownerId"),
            short_link=_str(item, "shortLink"),
            description=_opt_str(item, "description"),
            members=str_list(item.get("members")),
            is_private=_bool(item, "isPrivate"),
            archived=_bool(item, "archived"),
            created_at=_str(item, "createdAt"),
            updated_at=_str(item, "updatedAt"),
        )

    def to_item(self) -> dict[str, Any]:
        return _drop_none(
            {
                "boardId": self.board_id,
                "name": self.name,
                "ownerId": self.owner_id,
                "shortLink": self.short_link,
                "description": self.description,
                "members": list(self.members),
                "isPrivate": self.is_private,
                "archived": self.archived,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
            }
        )

    def to_json(self, *, short_link_base: str = "") -> dict[str, Any]:
        return {
            "id": self.board_id,
            "name": self.name,
            "description": self.description,
            "members": list(self.members),
            "member_qty": self.member_qty,
            "owner_id": self.owner_id,
            "short_link": f"{short_link_base}{self.short_link}",
            "is_private": self.is_private,
            "archived": self.archived,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class CardLimit:
    status: str
    disable_at: int
    warn_at: int

    @classmethod
    def from_value(cls, value: Any, default: dict[str, Any]) -> "CardLimit":
        merged = dict(default)
        if isinstance(value, dict):
            merged.update({k: v for k, v in value.items() if k in default and v is not None})
        return cls(
            status=str(merged["status"]),
            disable_at=_int(merged, "disable_at", default["disable_at"]),
            warn_at=_int(merged, "warn_at", default["warn_at"]),
        )

    def to_json(self) -> dict[str, Any]:
        return {"status": self.status, "disable_at": self.disable_at, "warn_at": self.warn_at}


@dataclass(frozen=True)
class ListLimits:
    open_per_list: CardLimit
    total_per_list: CardLimit

    @classmethod
    def from_value(cls, value: Any) -> "ListLimits":
        cards = {}
        if isinstance(value, dict) and isinstance(value.get("cards"), dict):
            cards = value["cards"]
        return cls(
            open_per_list=CardLimit.from_value(cards.get("open_per_list"), DEFAULT_OPEN_PER_LIST),
            total_per_list=CardLimit.from_value(cards.get("total_per_list"), DEFAULT_TOTAL_PER_LIST),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "cards": {
                "open_per_list": self.open_per_list.to_json(),
                "total_per_list": self.total_per_list.to_json(),
            }
        }


@dataclass(frozen=True)
class BoardList:
    list_id: str
    board_id: str
    name: str
    pos: int = 0
    closed: bool = False
    color: str | None = None
    soft_limit: int | None = None
    subscribed: bool = False
    limits: ListLimits = field(default_factory=lambda: ListLimits.from_value(None))
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "BoardList":
        return cls(
            list_id=_str(item, "listId"),
            board_id=_str(item, "boardId"),
            name=_str(item, "name"),
            pos=_int(item, "pos"),
            closed=_bool(item, "closed"),
            color=_opt_str(item, "color"),
            soft_limit=_opt_int(item, "softLimit"),
            subscribed=_bool(item, "subscribed"),
            limits=ListLimits.from_value(item.get("limits")),
            created_at=_str(item, "createdAt"),
            updated_at=_str(item, "updatedAt"),
        )

    def to_item(self) -> dict[str, Any]:
        return _drop_none(
            {
                "listId": self.list_id,
                "boardId": self.board_id,
                "name": self.name,
                "pos": self.pos,
                "closed": self.closed,
                "color": self.color,
                "softLimit": self.soft_limit,
                "subscribed": self.subscribed,
                "limits": self.limits.to_json(),
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
            }
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.list_id,
            "id_board": self.board_id,
            "name": self.name,
            "pos": self.pos,
            "closed": self.closed,
            "color": self.color,
            "soft_limit": self.soft_limit,
            "subscribed": self.subscribed,
            "limits": self.limits.to_json(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class Task:
    task_id: str
    board_id: str
    list_id: str
    title: str
    description: str = ""
    is_completed: bool = False
    start_date: str | None = None
    due_date: str | None = None
    due_reminder: str | None = None
    labels: list[str] = field(default_factory=list)
    users_reminder: list[str] = field(default_factory=list)
    short_link: str | None = None
    short_url: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Task":
        return cls(
            task_id=_str(item, "taskId"),
            board_id=_str(item, "boardId"),
            list_id=_str(item, "listId"),
            title=_str(item, "title"),
            description=_str(item, "description"),
            is_completed=_bool(item, "isCompleted"),
            start_date=_opt_str(item, "startDate"),
            due_date=_opt_str(item, "dueDate"),
            due_reminder=_opt_str(item, "dueReminder"),
            labels=str_list(item.get("labels")),
            users_reminder=str_list(item.get("usersReminder")),
            short_link=_opt_str(item, "shortLink"),
            short_url=_opt_str(item, "shortUrl"),
            created_at=_str(item, "createdAt"),
            updated_at=_str(item, "updatedAt"),
        )

    def to_item(self) -> dict[str, Any]:
        return _drop_none(
            {
                "taskId": self.task_id,
                "boardId": self.board_id,
                "listId": self.list_id,
                "title": self.title,
                "description": self.description,
                "isCompleted": self.is_completed,
                "startDate": self.start_date,
                "dueDate": self.due_date,
                "dueReminder": self.due_reminder,
                "labels": list(self.labels),
                "usersReminder": list(self.users_reminder),
                "shortLink": self.short_link,
                "shortUrl": self.short_url,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
            }
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.task_id,
            "board_id": self.board_id,
            "list_id": self.list_id,
            "title": self.title,
            "description": self.description,
            "is_completed": self.is_completed,
            "start_date": self.start_date,
            "due_date": self.due_date,
            "due_reminder": self.due_reminder,
            "labels": list(self.labels),
            "users_reminder": list(self.users_reminder),
            "short_link": self.short_link,
            "short_url": self.short_url,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class SubTask:
    subtask_id: str
    task_id: str
    title: str
    description: str = ""
    is_completed: bool = False
    start_date: str | None = None
    due_date: str | None = None
    due_reminder: str | None = None
    users_reminder: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "SubTask":
        return cls(
            subtask_id=_str(item, "subTaskId"),
            task_id=_str(item, "taskId"),
            title=_str(item, "title"),
            description=_str(item, "description"),
            is_completed=_bool(item, "isCompleted"),
            start_date=_opt_str(item, "startDate"),
            due_date=_opt_str(item, "dueDate"),
            due_reminder=_opt_str(item, "dueReminder"),
            users_reminder=str_list(item.get("usersReminder")),
            created_at=_str(item, "createdAt"),
            updated_at=_str(item, "updatedAt"),
        )

    def to_item(self) -> dict[str, Any]:
        return _drop_none(
            {
                "subTaskId": self.subtask_id,
                "taskId": self.task_id,
                "title": self.title,
                "description": self.description,
                "isCompleted": self.is_completed,
                "startDate": self.start_date,
                "dueDate": self.due_date,
                "dueReminder": self.due_reminder,
                "usersReminder": list(self.users_reminder),
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
            }
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.subtask_id,
            "task_id": self.task_id,
            "title": self.title,
            "description": self.description,
            "is_completed": self.is_completed,
            "start_date": self.start_date,
            "due_date": self.due_date,
            "due_reminder": self.due_reminder,
            "users_reminder": list(self.users_reminder),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
