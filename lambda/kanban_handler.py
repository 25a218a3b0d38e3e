from __future__ import annotations

import base64
import json
from typing import Any, Callable

from hierarchy import HierarchyAggregator
from kanban_config import Settings, load_settings
from kanban_errors import (
    Failure,
    InternalError,
    InvalidError,
    KanbanError,
    Result,
    Success,
    UnauthorizedError,
)
from kanban_ids import new_entity_id
from kanban_log import WideEvent
from kanban_service import KanbanService
from kanban_store import Deadline, KanbanStore
from task_mutations import TaskMutationService

ROUTE_PREFIX = ["v1", "kanban"]

MSG_BOARD_CREATED = "Board criado"
MSG_BOARD_FOUND = "Quadro encontrado com sucesso!"
MSG_BOARDS_FOUND = "Quadros encontrados com sucesso!"
MSG_LIST_CREATED = "Lista criada com sucesso!"
MSG_TASK_CREATED = "Tarefa criada com sucesso!"
MSG_TASK_FOUND = "Tarefa encontrada com sucesso!"
MSG_TASK_UPDATED = "Tarefa atualizada com sucesso!"
MSG_TASK_DELETED = "Tarefa removida com sucesso!"
MSG_SUBTASK_CREATED = "Subtarefa criada com sucesso!"


class Services:
    def __init__(self, store: KanbanStore, settings: Settings) -> None:
        self.hierarchy = HierarchyAggregator(store, settings)
        self.mutations = TaskMutationService(store, self.hierarchy)
        self.creation = KanbanService(store, settings)


def _store(settings: Settings, context: Any) -> KanbanStore:
    return KanbanStore(settings, deadline=Deadline.from_context(context, settings.deadline_margin_ms))


def _response(result: Result, request_id: str) -> dict[str, Any]:
    headers = {
        "content-type": "application/json",
        "cache-control": "no-store",
        "x-request-id": request_id,
    }
    if isinstance(result, Failure):
        headers["x-error-code"] = result.error_code
    return {
        "statusCode": int(result.status_code),
        "headers": headers,
        "body": json.dumps(result.envelope()),
    }


def _request_id(event: dict[str, Any]) -> str:
    rc = event.get("requestContext") or {}
    if isinstance(rc, dict):
        rid = str(rc.get("requestId") or "").strip()
        if rid:
            return rid
    return new_entity_id()


def _parse_body(event: dict[str, Any]) -> dict[str, Any]:
    raw = event.get("body")
    if raw is None:
        return {}
    if not isinstance(raw, str):
        raise InvalidError("request body must be a JSON object")
    if bool(event.get("isBase64Encoded")):
        try:
            raw = base64.b64decode(raw.encode("utf-8")).decode("utf-8")
        except ValueError:
            raise InvalidError("request body base64 decode failed") from None
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        raise InvalidError("request body must be valid JSON") from None
    if not isinstance(parsed, dict):
        raise InvalidError("request body must be a JSON object")
    return parsed


def _path(event: dict[str, Any]) -> str:
    p = str(event.get("path") or "").strip()
    # Best effort for custom-domain stage prefixes.
    marker = "/v1/kanban"
    idx = p.find(marker)
    if idx >= 0:
        p = p[idx:]
    return p


def _query_param(event: dict[str, Any], key: str) -> str:
    qs = event.get("queryStringParameters") or {}
    if not isinstance(qs, dict):
        return ""
    val = qs.get(key)
    return str(val).strip() if val is not None else ""


def _claims(event: dict[str, Any]) -> dict[str, Any]:
    rc = event.get("requestContext") or {}
    if not isinstance(rc, dict):
        return {}
    auth = rc.get("authorizer") or {}
    if not isinstance(auth, dict):
        return {}
    claims = auth.get("claims")
    if isinstance(claims, dict):
        return claims
    jwt_claims = (auth.get("jwt") or {}).get("claims")
    if isinstance(jwt_claims, dict):
        return jwt_claims
    return {}


def _actor(event: dict[str, Any]) -> str:
    sub = str(_claims(event).get("sub") or "").strip()
    if not sub:
        raise UnauthorizedError("missing authorizer claims")
    return sub


def _create_board(services: Services, event: dict[str, Any], actor: str, _ref: str) -> Result:
    services.creation.create_board(_parse_body(event), owner_id=actor)
    return Success(MSG_BOARD_CREATED, status_code=201)


def _list_boards(services: Services, event: dict[str, Any], actor: str, _ref: str) -> Result:
    page = services.hierarchy.fetch_boards_page(
        actor,
        _query_param(event, "page") or None,
        _query_param(event, "limit") or None,
    )
    return Success(MSG_BOARDS_FOUND, data=page.to_json())


def _get_board(services: Services, event: dict[str, Any], actor: str, board_ref: str) -> Result:
    return Success(MSG_BOARD_FOUND, data=services.hierarchy.fetch_board(board_ref))


def _create_list(services: Services, event: dict[str, Any], actor: str, _ref: str) -> Result:
    services.creation.create_list(_parse_body(event))
    return Success(MSG_LIST_CREATED, status_code=201)


def _create_task(services: Services, event: dict[str, Any], actor: str, _ref: str) -> Result:
    services.creation.create_task(_parse_body(event))
    return Success(MSG_TASK_CREATED, status_code=201)


def _get_task(services: Services, event: dict[str, Any], actor: str, task_id: str) -> Result:
    return Success(MSG_TASK_FOUND, data=services.hierarchy.fetch_task_with_subtasks(task_id))


def _change_task_list(services: Services, event: dict[str, Any], actor: str, task_id: str) -> Result:
    body = _parse_body(event)
    services.mutations.change_list(task_id, str(body.get("list_id") or ""))
    return Success(MSG_TASK_UPDATED)


def _toggle_task_status(services: Services, event: dict[str, Any], actor: str, task_id: str) -> Result:
    services.mutations.toggle_status(task_id, actor)
    return Success(MSG_TASK_UPDATED)


def _delete_task(services: Services, event: dict[str, Any], actor: str, task_id: str) -> Result:
    services.mutations.delete_task(task_id, actor)
    return Success(MSG_TASK_DELETED)


def _create_subtask(services: Services, event: dict[str, Any], actor: str, _ref: str) -> Result:
    services.creation.create_subtask(_parse_body(event))
    return Success(MSG_SUBTASK_CREATED, status_code=201)


Route = Callable[[Services, dict[str, Any], str, str], Result]


def _match(method: str, segments: list[str]) -> tuple[Route | None, str]:
    if segments[:2] != ROUTE_PREFIX:
        return None, ""
    rest = segments[2:]

    # /v1/kanban/boards[/{boardRef}]
    if rest == ["boards"]:
        if method == "POST":
            return _create_board, ""
        if method == "GET":
            return _list_boards, ""
    if len(rest) == 2 and rest[0] == "boards" and method == "GET":
        return _get_board, rest[1]

    if rest == ["lists"] and method == "POST":
        return _create_list, ""
    if rest == ["subtasks"] and method == "POST":
        return _create_subtask, ""

    # /v1/kanban/tasks[/{taskId}[/list|/status]]
    if rest == ["tasks"] and method == "POST":
        return _create_task, ""
    if len(rest) == 2 and rest[0] == "tasks":
        if method == "GET":
            return _get_task, rest[1]
        if method == "DELETE":
            return _delete_task, rest[1]
    if len(rest) == 3 and rest[0] == "tasks" and method == "PATCH":
        if rest[2] == "list":
            return _change_task_list, rest[1]
        if rest[2] == "status":
            return _toggle_task_status, rest[1]
    return None, ""


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    request_id = _request_id(event)
    method = str(event.get("httpMethod") or "").upper()
    path = _path(event)
    segments = [s for s in path.split("/") if s]

    try:
        settings = load_settings()
    except ValueError as e:
        return _response(Failure(500, "MISCONFIGURED", str(e)), request_id)

    wide = WideEvent("kanban_request", schema_version=settings.schema_version, request_id=request_id)
    wide.set(method=method, route=path)
    result = _dispatch(event, context, settings, method, path, segments, wide)
    wide.set(
        outcome="success" if isinstance(result, Success) else "error",
        status_code=int(result.status_code),
    )
    wide.finish()
    return _response(result, request_id)


def _dispatch(
    event: dict[str, Any],
    context: Any,
    settings: Settings,
    method: str,
    path: str,
    segments: list[str],
    wide: WideEvent,
) -> Result:
    missing = settings.missing_tables()
    if missing:
        return Failure(500, "MISCONFIGURED", f"missing env vars: {', '.join(missing)}")

    route, ref = _match(method, segments)
    if route is None:
        return Failure(404, "ROUTE_NOT_FOUND", f"route not found: {method} {path}")

    try:
        actor = _actor(event)
        wide.set(principal=actor)
        return route(Services(_store(settings, context), settings), event, actor, ref)
    except KanbanError as e:
        if isinstance(e, InternalError):
            wide.error(e.__cause__ or e)
        return Failure.from_error(e)
    except Exception as e:
        wide.error(e)
        return Failure.from_error(InternalError(str(e)))
