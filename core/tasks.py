from __future__ import annotations

"""Task board mutations delivered as function calls next to the text stream.

Two call shapes exist and both are accepted:

* bulk: ``{"tasks": [{"id", "description", "status"}, ...]}`` replaces the
  session's whole list;
* per-task: ``{"action": "create"|"update"|"delete", "taskId", ...}`` changes
  one task.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from jsonschema import Draft7Validator
from pydantic import TypeAdapter, ValidationError

from .debug_log import dbg
from .state import (
    BulkTaskMutation,
    Task,
    TaskActionMutation,
    TaskMutation,
    TaskSpec,
    TaskStatus,
)

logger = logging.getLogger(__name__)

_STATUS_VALUES = [s.value for s in TaskStatus]

MANAGE_TASKS_DECLARATION: Dict[str, Any] = {
    "name": "manageTasks",
    "description": "Update the mission control board with current sub-tasks and their statuses.",
    "parameters": {
        "type": "object",
        "properties": {
            "tasks": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "string"},
                        "description": {"type": "string"},
                        "status": {"type": "string", "enum": _STATUS_VALUES},
                    },
                    "required": ["id", "description", "status"],
                },
            },
        },
        "required": ["tasks"],
    },
}

UPDATE_TASK_DECLARATION: Dict[str, Any] = {
    "name": "updateTask",
    "description": "Create, update or delete a single sub-task on the mission control board.",
    "parameters": {
        "type": "object",
        "properties": {
            "action": {"type": "string", "enum": ["create", "update", "delete"]},
            "taskId": {"type": "string"},
            "description": {"type": "string"},
            "status": {"type": "string", "enum": _STATUS_VALUES},
        },
        "required": ["action", "taskId"],
    },
}

TASK_TOOL_DECLARATIONS = [MANAGE_TASKS_DECLARATION, UPDATE_TASK_DECLARATION]

_BULK_VALIDATOR = Draft7Validator(MANAGE_TASKS_DECLARATION["parameters"])
_ACTION_VALIDATOR = Draft7Validator(UPDATE_TASK_DECLARATION["parameters"])
_MUTATION_ADAPTER = TypeAdapter(TaskMutation)


def parse_task_call(name: Optional[str], args: Any) -> Optional[TaskMutation]:
    """Turn a raw function call into a mutation, or ``None`` if it fits neither shape.

    The shape of ``args`` decides the variant; the call name is only used
    for logging since backends have been seen to mix them up.
    """
    if not isinstance(args, dict):
        logger.warning(f"⚠️ TASKS: Ignoring call '{name}' with non-object arguments")
        return None

    if "tasks" in args:
        errors = list(_BULK_VALIDATOR.iter_errors(args))
        if errors:
            logger.warning(f"⚠️ TASKS: Invalid bulk call '{name}': {errors[0].message}")
            return None
        return BulkTaskMutation(tasks=[TaskSpec(**entry) for entry in args["tasks"]])

    if "action" in args:
        errors = list(_ACTION_VALIDATOR.iter_errors(args))
        if errors:
            logger.warning(f"⚠️ TASKS: Invalid task action '{name}': {errors[0].message}")
            return None
        return TaskActionMutation(
            action=args["action"],
            task_id=args["taskId"],
            description=args.get("description"),
            status=args.get("status"),
        )

    logger.warning(f"⚠️ TASKS: Call '{name}' matches no known task shape: {sorted(args)}")
    return None


def coerce_mutation(value: Any) -> TaskMutation:
    """Validate an already-structured mutation (dict with ``kind``)."""
    try:
        return _MUTATION_ADAPTER.validate_python(value)
    except ValidationError as exc:
        raise ValueError(f"Invalid task mutation: {exc}") from exc


def _apply_action(tasks: List[Task], session_id: str, mutation: TaskActionMutation) -> List[Task]:
    index = next((i for i, t in enumerate(tasks) if t.id == mutation.task_id), None)

    if mutation.action == "create":
        if index is not None:
            dbg.mutation_ignored(session_id, "duplicate create", mutation)
            return tasks
        created = Task(
            id=mutation.task_id,
            description=mutation.description or "",
            status=mutation.status or TaskStatus.PENDING,
            session_id=session_id,
        )
        return tasks + [created]

    if index is None:
        logger.debug("Task %s not found in session %s for %s", mutation.task_id, session_id, mutation.action)
        dbg.mutation_ignored(session_id, f"unknown task for {mutation.action}", mutation)
        return tasks

    if mutation.action == "update":
        current = tasks[index]
        changed = current.model_copy(
            update={
                "description": current.description if mutation.description is None else mutation.description,
                "status": current.status if mutation.status is None else mutation.status,
            }
        )
        return tasks[:index] + [changed] + tasks[index + 1:]

    # delete
    return tasks[:index] + tasks[index + 1:]


def _apply_bulk(session_id: str, mutation: BulkTaskMutation) -> List[Task]:
    installed: List[Task] = []
    seen = set()
    for entry in mutation.tasks:
        # Keep ids unique within the session; the last entry for an id wins
        if entry.id in seen:
            installed = [t for t in installed if t.id != entry.id]
        seen.add(entry.id)
        installed.append(
            Task(id=entry.id, description=entry.description, status=entry.status, session_id=session_id)
        )
    return installed


def apply_task_mutations(
    tasks: Sequence[Task],
    session_id: str,
    mutations: Iterable[TaskMutation],
) -> List[Task]:
    """Apply mutations in order to one session's task list and return the new list.

    Input is never modified. Tasks of other sessions are not expected here;
    the store partitions the collection by session id.
    """
    current = [t for t in tasks if t.session_id == session_id]
    for mutation in mutations:
        if isinstance(mutation, BulkTaskMutation):
            current = _apply_bulk(session_id, mutation)
        else:
            current = _apply_action(current, session_id, mutation)
    return current


__all__ = [
    "MANAGE_TASKS_DECLARATION",
    "UPDATE_TASK_DECLARATION",
    "TASK_TOOL_DECLARATIONS",
    "parse_task_call",
    "coerce_mutation",
    "apply_task_mutations",
]
