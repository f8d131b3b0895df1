from __future__ import annotations


class FmsError(Exception):
    pass


class ValidationError(FmsError):
    pass


class NotFoundError(FmsError):
    pass


class TemplateNotFoundError(NotFoundError):
    def __init__(self, template_id: int) -> None:
        super().__init__(f"template {template_id} not found")
        self.template_id = template_id


class ProjectNotFoundError(NotFoundError):
    def __init__(self, project_id: int) -> None:
        super().__init__(f"project {project_id} not found")
        self.project_id = project_id


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"task {task_id} not found")
        self.task_id = task_id


class IllegalTransitionError(FmsError):
    def __init__(self, task_id: int, current: str, requested: str, reason: str) -> None:
        super().__init__(f"task {task_id} cannot move from '{current}' to '{requested}': {reason}")
        self.task_id = task_id
        self.current = current
        self.requested = requested
        self.reason = reason


class PersistenceError(FmsError):
    pass


class DirectoryUnavailableError(FmsError):
    pass
