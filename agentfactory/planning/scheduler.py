"""Dependency-ordered task selection."""

from __future__ import annotations

from agentfactory.planning.models import Plan, Task


def completed_ids(plan: Plan) -> set[str]:
    """Ids of tasks whose ``passes`` flag is set."""
    return {t.id for t in plan.tasks if t.passes}


def is_eligible(task: Task, done: set[str]) -> bool:
    return not task.passes and all(dep in done for dep in task.dependencies)


def select_next_task(plan: Plan) -> Task | None:
    """First eligible task in plan order, or None when nothing is left to run.

    None does not mean every task passes: tasks behind a missing or cyclic
    dependency are never eligible.
    """
    done = completed_ids(plan)
    for task in plan.tasks:
        if is_eligible(task, done):
            return task
    return None


def stalled_tasks(plan: Plan) -> list[Task]:
    """Unfinished tasks; meaningful once ``select_next_task`` returns None."""
    return [t for t in plan.tasks if not t.passes]


def dangling_dependencies(plan: Plan) -> dict[str, list[str]]:
    """Map of task id to dependency ids that name no task in the plan."""
    known = {t.id for t in plan.tasks}
    dangling: dict[str, list[str]] = {}
    for task in plan.tasks:
        missing = [dep for dep in task.dependencies if dep not in known]
        if missing:
            dangling[task.id] = missing
    return dangling


def dependency_cycles(plan: Plan) -> list[list[str]]:
    """Dependency cycles among known tasks, each as a list of task ids."""
    graph = {t.id: list(t.dependencies) for t in plan.tasks}
    white, grey, black = 0, 1, 2
    color = dict.fromkeys(graph, white)
    cycles: list[list[str]] = []
    stack: list[str] = []

    def visit(node: str) -> None:
        color[node] = grey
        stack.append(node)
        for dep in graph[node]:
            if dep not in graph:
                continue
            if color[dep] == grey:
                cycles.append(stack[stack.index(dep) :])
            elif color[dep] == white:
                visit(dep)
        stack.pop()
        color[node] = black

    for node in graph:
        if color[node] == white:
            visit(node)
    return cycles


def dependency_issues(plan: Plan) -> list[str]:
    """Human-readable warnings about tasks that can never become eligible."""
    issues: list[str] = []
    for task_id, missing in dangling_dependencies(plan).items():
        issues.append(f"Task {task_id} depends on unknown task(s): {', '.join(missing)}")
    for cycle in dependency_cycles(plan):
        issues.append(f"Dependency cycle: {' -> '.join([*cycle, cycle[0]])}")
    return issues
