from __future__ import annotations

import os
from dataclasses import dataclass

BOARD_NAME_SCOPES = {"global", "owner"}


def _env_str(name: str, default: str = "") -> str:
    return str(os.environ.get(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if not raw:
        return default
    try:
        n = int(raw)
    except ValueError:
        return default
    return n if n > 0 else default


@dataclass(frozen=True)
class Settings:
    boards_table: str
    lists_table: str
    tasks_table: str
    subtasks_table: str
    memberships_table: str
    uniques_table: str
    users_table: str
    short_link_base: str = ""
    schema_version: str = "2026-10-01"
    default_page_limit: int = 10
    max_page_limit: int = 50
    short_link_max_attempts: int = 1000
    board_name_scope: str = "global"
    deadline_margin_ms: int = 500

    @classmethod
    def from_env(cls) -> "Settings":
        scope = _env_str("KANBAN_BOARD_NAME_SCOPE", "global").lower()
        if scope not in BOARD_NAME_SCOPES:
            raise ValueError("KANBAN_BOARD_NAME_SCOPE must be 'global' or 'owner'")
        return cls(
            boards_table=_env_str("KANBAN_BOARDS_TABLE"),
            lists_table=_env_str("KANBAN_LISTS_TABLE"),
            tasks_table=_env_str("KANBAN_TASKS_TABLE"),
            subtasks_table=_env_str("KANBAN_SUBTASKS_TABLE"),
            memberships_table=_env_str("KANBAN_MEMBERSHIPS_TABLE"),
            uniques_table=_env_str("KANBAN_UNIQUES_TABLE"),
            users_table=_env_str("KANBAN_USERS_TABLE"),
            short_link_base=_env_str("SHORT_LINK_KANBAN"),
            schema_version=_env_str("KANBAN_SCHEMA_VERSION", "2026-10-01"),
            default_page_limit=_env_int("KANBAN_DEFAULT_PAGE_LIMIT", 10),
            max_page_limit=_env_int("KANBAN_MAX_PAGE_LIMIT", 50),
            short_link_max_attempts=_env_int("KANBAN_SHORT_LINK_MAX_ATTEMPTS", 1000),
            board_name_scope=scope,
            deadline_margin_ms=_env_int("KANBAN_DEADLINE_MARGIN_MS", 500),
        )

    def missing_tables(self) -> list[str]:
        names = {
            "KANBAN_BOARDS_TABLE": self.boards_table,
            "KANBAN_LISTS_TABLE": self.lists_table,
            "KANBAN_TASKS_TABLE": self.tasks_table,
            "KANBAN_SUBTASKS_TABLE": self.subtasks_table,
            "KANBAN_MEMBERSHIPS_TABLE": self.memberships_table,
            "KANBAN_UNIQUES_TABLE": self.uniques_table,
            "KANBAN_USERS_TABLE": self.users_table,
        }
        return [env for env, value in names.items() if not value]


_settings: Settings | None = None


def load_settings() -> Settings:
    # Built once per cold start and passed by reference afterwards.
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
