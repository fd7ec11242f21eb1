"""
Task graph — dependency validation and parallel fail-fast execution.

A build is a DAG of tasks. Each task is a callable returning a Receipt;
a task may start once every task it depends on has completed. Ready
tasks run concurrently on a thread pool bounded by ``jobs``.

Fail-fast: once any task raises, no further task is started. Tasks
already running are allowed to finish (their artifacts are written
atomically, so there is nothing to roll back), then the first failure
is re-raised to the caller.
"""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from nativeforge.core.errors import BuildError, GraphError, InternalFailure
from nativeforge.core.models.action import Receipt

logger = logging.getLogger(__name__)

ProgressCallback = Callable[["Task", Receipt], None]


@dataclass
class Task:
    """One node of the build graph."""

    id: str
    run: Callable[[], Receipt]
    depends_on: list[str] = field(default_factory=list)
    tag: str = ""                   # progress label: gcc, ar, cp, tar, cargo


def validate_graph(tasks: list[Task]) -> list[str]:
    """Validate the task DAG.

    Checks for:
    - Duplicate task IDs
    - References to non-existent task IDs
    - Cycles (Kahn's algorithm)

    Returns:
        List of error strings (empty = valid).
    """
    errors: list[str] = []
    ids = {t.id for t in tasks}

    seen: set[str] = set()
    for t in tasks:
        if t.id in seen:
            errors.append(f"Duplicate task ID: {t.id}")
        seen.add(t.id)

    for t in tasks:
        for dep in t.depends_on:
            if dep not in ids:
                errors.append(f"Task '{t.id}' depends on unknown task '{dep}'")

    if errors:
        return errors

    in_degree: dict[str, int] = {t.id: len(t.depends_on) for t in tasks}
    successors: dict[str, list[str]] = {t.id: [] for t in tasks}
    for t in tasks:
        for dep in t.depends_on:
            successors[dep].append(t.id)

    queue = [tid for tid, deg in in_degree.items() if deg == 0]
    processed = 0
    while queue:
        node = queue.pop(0)
        processed += 1
        for succ in successors[node]:
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                queue.append(succ)

    if processed < len(tasks):
        errors.append("Dependency cycle detected in build graph")

    return errors


def get_ready_tasks(
    tasks: list[Task],
    completed: set[str],
    running: set[str],
) -> list[Task]:
    """Tasks whose dependencies are all completed, in declaration order."""
    done_or_running = completed | running
    return [
        t for t in tasks
        if t.id not in done_or_running and all(d in completed for d in t.depends_on)
    ]


def _crashed(task: Task, exc: Exception) -> InternalFailure:
    err = InternalFailure(
        f"{task.id} crashed: {exc}",
        step=task.id,
        diagnostic=f"{type(exc).__name__}: {exc}",
    )
    err.__cause__ = exc
    return err


def run_graph(
    tasks: list[Task],
    jobs: int = 1,
    on_progress: ProgressCallback | None = None,
) -> list[Receipt]:
    """Execute every task, respecting dependencies.

    Args:
        tasks: The graph's nodes.
        jobs: Maximum number of tasks running at once.
        on_progress: Called (from the coordinating thread) after each
            task completes successfully.

    Returns:
        Receipts in completion order.

    Raises:
        GraphError: the graph is not a valid DAG (nothing is run).
        BuildError: the first failure raised by a task. Any other exception
            is wrapped in InternalFailure with the task id as its step.
    """
    errors = validate_graph(tasks)
    if errors:
        raise GraphError("Invalid build graph", diagnostic="\n".join(errors))

    by_id = {t.id: t for t in tasks}
    completed: set[str] = set()
    receipts: list[Receipt] = []
    first_error: BuildError | None = None

    with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, jobs)) as pool:
        running: dict[concurrent.futures.Future, str] = {}

        while True:
            if first_error is None:
                for task in get_ready_tasks(tasks, completed, set(running.values())):
                    if len(running) >= max(1, jobs):
                        break
                    logger.debug("Starting task %s", task.id)
                    running[pool.submit(task.run)] = task.id

            if not running:
                break

            done, _ = concurrent.futures.wait(
                running, return_when=concurrent.futures.FIRST_COMPLETED
            )
            for future in done:
                task = by_id[running.pop(future)]
                try:
                    receipt = future.result()
                except BuildError as e:
                    logger.debug("Task %s failed: %s", task.id, e)
                    if first_error is None:
                        first_error = e
                    continue
                except Exception as e:
                    logger.error("Task %s crashed", task.id, exc_info=e)
                    if first_error is None:
                        first_error = _crashed(task, e)
                    continue
                completed.add(task.id)
                receipts.append(receipt)
                if on_progress is not None:
                    on_progress(task, receipt)

    if first_error is not None:
        raise first_error

    return receipts
