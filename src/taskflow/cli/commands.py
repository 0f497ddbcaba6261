# src/taskflow/cli/commands.py

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from ..core.state import AppState
from ..errors import CLIENT_ERRORS, StoreUnavailable
from ..tasks.task_models import Task, TaskStatus

CommandHandler = Callable[[AppState, list[str]], str]

logger = logging.getLogger(__name__)

_RELATIVE_RE = re.compile(r"^\+(\d+)([mhdw])$")
_UNITS = {"m": "minutes", "h": "hours", "d": "days", "w": "weeks"}


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}
        self._public: set[str] = set()

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
        *,
        public: bool = False,
    ) -> None:
        """public=True commands work without a logged-in user."""
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler
        if public:
            self._public.update([key, *(a.lower() for a in aliases)])

    def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Client errors (not found, forbidden, dependency gate, validation) are
        turned into a reply; anything else propagates.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        if name not in self._public and state.current_user_id is None:
            return "Not logged in. Use /register or /login first."

        try:
            return handler(state, args)
        except CLIENT_ERRORS as e:
            logger.debug("Client error in /%s: %s", name, e)
            return f"Error: {e}"
        except StoreUnavailable as e:
            logger.error("Store unavailable in /%s: %s", name, e)
            return "Storage is unavailable, try again later."

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def parse_due(raw: str, now: datetime) -> datetime:
    """'+30m' / '+2h' / '+1d' / '+1w' relative to now, or an ISO-8601 timestamp (UTC if naive)."""
    raw = raw.strip()
    m = _RELATIVE_RE.match(raw)
    if m:
        return now + timedelta(**{_UNITS[m.group(2)]: int(m.group(1))})
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError as e:
        raise ValueError(f"Cannot parse due date {raw!r} (use +30m, +2h, +1d or ISO-8601)") from e
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def _task_id(args: list[str], usage: str) -> int:
    if not args or not args[0].lstrip("#").isdigit():
        raise ValueError(usage)
    return int(args[0].lstrip("#"))


def format_task(task: Task) -> str:
    mark = "x" if task.status == TaskStatus.COMPLETED else " "
    extras: list[str] = [task.priority.value, task.category.value]
    if task.is_recurring:
        extras.append(task.recurrence.value)
    if task.dependencies:
        extras.append("deps=" + ",".join(f"#{d}" for d in task.dependencies))
    if task.progress is not None:
        extras.append(f"{task.progress:.0f}%")
    if task.notified:
        extras.append("notified")
    due = task.due_at.astimezone().strftime("%Y-%m-%d %H:%M")
    return f"[{mark}] #{task.id} {task.title} (due {due}; {', '.join(extras)})"


def _format_list(title: str, tasks: list[Task]) -> str:
    if not tasks:
        return f"{title}: none."
    return "\n".join([f"{title}:"] + [f"  {format_task(t)}" for t in tasks])


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_register(state: AppState, args: list[str]) -> str:
    """/register <email> <password> <name...>"""
    if len(args) < 3:
        return "Usage: /register <email> <password> <name>"
    user = state.user_store.add_user(email=args[0], password=args[1], name=" ".join(args[2:]))
    state.current_user_id = user.id
    return f"Registered and logged in as {user.name} <{user.email}> (id={user.id})."


def cmd_login(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /login <email> <password>"
    user = state.user_store.authenticate(args[0], args[1])
    if user is None:
        return "Invalid email or password."
    state.current_user_id = user.id
    return f"Logged in as {user.name} <{user.email}>."


def cmd_whoami(state: AppState, args: list[str]) -> str:
    user = state.user_store.find_user(state.current_user_id or 0)
    if user is None:
        return "Not logged in."
    push = user.push_token or "-"
    return f"{user.name} <{user.email}> id={user.id} push={push}"


def cmd_push(state: AppState, args: list[str]) -> str:
    """/push <token> sets the push endpoint; /push off clears it."""
    if not args:
        return "Usage: /push <token> | /push off"
    token = None if args[0].lower() in ("off", "none", "-") else args[0]
    state.user_store.set_push_token(state.current_user_id or 0, token)
    return "Push notifications disabled." if token is None else f"Push endpoint set to {token}."


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title> | <due> | <category> [| <priority> [| <recurrence> [| <dep ids>]]]
    """
    fields = [f.strip() for f in " ".join(args).split("|")]
    if len(fields) < 3 or not fields[0]:
        return "Usage: /add <title> | <due: +30m, +2h, +1d or ISO> | <Work|Personal|Urgent> [| priority [| recurrence [| deps]]]"

    try:
        due_at = parse_due(fields[1], state.clock.now())
    except ValueError as e:
        return f"Error: {e}"

    deps = [d.strip().lstrip("#") for d in fields[5].replace(",", " ").split()] if len(fields) > 5 else []
    task = state.tasks.create_task(
        state.current_user_id or 0,
        title=fields[0],
        due_at=due_at,
        category=fields[2],
        priority=fields[3] if len(fields) > 3 and fields[3] else None,
        recurrence=fields[4] if len(fields) > 4 and fields[4] else None,
        dependencies=deps,
    )
    return f"Created {format_task(task)}"


def cmd_list(state: AppState, args: list[str]) -> str:
    """/list [pending|completed]"""
    status = args[0] if args else None
    return _format_list("Tasks", state.tasks.list_tasks(state.current_user_id or 0, status=status))


def cmd_show(state: AppState, args: list[str]) -> str:
    task = state.tasks.get_task(state.current_user_id or 0, _task_id(args, "Usage: /show <id>"))
    lines = [format_task(task)]
    if task.description:
        lines.append(f"  {task.description}")
    return "\n".join(lines)


def cmd_done(state: AppState, args: list[str]) -> str:
    task = state.tasks.change_status(
        state.current_user_id or 0, _task_id(args, "Usage: /done <id>"), TaskStatus.COMPLETED
    )
    return f"Completed {format_task(task)}"


def cmd_reopen(state: AppState, args: list[str]) -> str:
    task = state.tasks.change_status(state.current_user_id or 0, _task_id(args, "Usage: /reopen <id>"), TaskStatus.PENDING)
    return f"Reopened {format_task(task)}"


def cmd_progress(state: AppState, args: list[str]) -> str:
    if len(args) != 2:
        return "Usage: /progress <id> <0-100>"
    task = state.tasks.update_progress(state.current_user_id or 0, _task_id(args, "Usage: /progress <id> <0-100>"), args[1])
    return f"Updated {format_task(task)}"


def cmd_edit(state: AppState, args: list[str]) -> str:
    """/edit <id> <field>=<value> ... (title, description, priority, due, category, recurrence, deps)"""
    usage = "Usage: /edit <id> field=value ... (title, description, priority, due, category, recurrence, deps)"
    task_id = _task_id(args, usage)
    rest = " ".join(args[1:])
    pairs = re.findall(r"(\w+)=(\"[^\"]*\"|\S+)", rest)
    if not pairs:
        return usage

    fields: dict[str, object] = {}
    for key, value in pairs:
        value = value.strip('"')
        if key == "due":
            fields["due_at"] = parse_due(value, state.clock.now())
        elif key == "deps":
            fields["dependencies"] = [d.lstrip("#") for d in value.split(",") if d]
        else:
            fields[key] = value
    task = state.tasks.update_task(state.current_user_id or 0, task_id, **fields)
    return f"Updated {format_task(task)}"


def cmd_delete(state: AppState, args: list[str]) -> str:
    task_id = _task_id(args, "Usage: /del <id>")
    state.tasks.delete_task(state.current_user_id or 0, task_id)
    return f"Task #{task_id} removed."


def cmd_due(state: AppState, args: list[str]) -> str:
    return _format_list("Due soon", state.tasks.due_soon(state.current_user_id or 0))


def cmd_overdue(state: AppState, args: list[str]) -> str:
    return _format_list("Overdue", state.tasks.overdue(state.current_user_id or 0))


def cmd_stats(state: AppState, args: list[str]) -> str:
    s = state.tasks.stats(state.current_user_id or 0)
    cats = ", ".join(f"{k}: {v}" for k, v in s.by_category.items()) or "none"
    return (
        "Stats:\n"
        f"  Tasks: {s.total} (completed {s.completed}, {s.completion_rate:.0f}%)\n"
        f"  By category: {cats}\n"
        f"  Upcoming: {len(s.upcoming)}\n"
        f"  Overdue: {len(s.overdue)}"
    )


def cmd_sweep(state: AppState, args: list[str]) -> str:
    """Run all sweep passes once, right now."""
    coro = state.scheduler.run_all_passes()
    if state.scheduler_loop is not None and state.scheduler_loop.is_running():
        reports = asyncio.run_coroutine_threadsafe(coro, state.scheduler_loop).result(timeout=120)
    else:
        reports = asyncio.run(coro)
    return "\n".join(["Sweep finished:"] + [f"  {r}" for r in reports])


def _wrap_usage(handler: CommandHandler) -> CommandHandler:
    def wrapped(state: AppState, args: list[str]) -> str:
        try:
            return handler(state, args)
        except ValueError as e:
            if isinstance(e, CLIENT_ERRORS):
                raise
            return str(e)

    wrapped.__doc__ = handler.__doc__
    return wrapped


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"], public=True)
registry.register("register", cmd_register, help_text="Create an account: /register <email> <password> <name>.", public=True)
registry.register("login", cmd_login, help_text="Log in: /login <email> <password>.", public=True)
registry.register("whoami", cmd_whoami, help_text="Show the current user.")
registry.register("push", cmd_push, help_text="Set push endpoint: /push <token> | /push off.")
registry.register("add", _wrap_usage(cmd_add), help_text="Add a task: /add title | due | category [| priority [| recurrence [| deps]]].")
registry.register("list", cmd_list, help_text="List your tasks: /list [pending|completed].", aliases=["ls"])
registry.register("show", _wrap_usage(cmd_show), help_text="Show one task: /show <id>.")
registry.register("done", _wrap_usage(cmd_done), help_text="Mark a task completed (dependencies must be done).")
registry.register("reopen", _wrap_usage(cmd_reopen), help_text="Mark a task pending again.")
registry.register("progress", _wrap_usage(cmd_progress), help_text="Set progress: /progress <id> <0-100>.")
registry.register("edit", _wrap_usage(cmd_edit), help_text="Edit fields: /edit <id> field=value ...")
registry.register("del", _wrap_usage(cmd_delete), help_text="Delete a task: /del <id>.", aliases=["rm"])
registry.register("due", cmd_due, help_text="Tasks due within 24 hours and not yet reminded.")
registry.register("overdue", cmd_overdue, help_text="Pending tasks past their due date.")
registry.register("stats", cmd_stats, help_text="Completion statistics.")
registry.register("sweep", cmd_sweep, help_text="Run the recurrence / reminder sweeps once now.")
