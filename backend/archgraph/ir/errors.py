class RuntimeFlowError(Exception):
    """Base class for hard runtime failures that abort an invocation."""


class ProcessValidationError(RuntimeFlowError):
    def __init__(self, process_id: str, step_id: str, missing: list[str] | None = None):
        self.process_id = process_id
        self.step_id = step_id
        self.missing = missing or []
        if self.missing:
            detail = f"missing {', '.join(self.missing)}"
        else:
            detail = "input object required."
        super().__init__(
            f'Process "{process_id}" validation failed at step "{step_id}": {detail}'
        )


class RouteNotFoundError(RuntimeFlowError):
    def __init__(self, method: str, path: str):
        self.method = method
        self.path = path
        super().__init__(f"No REST API node matches {method} {path}")


class InvalidFlowError(RuntimeFlowError):
    pass


class UnsafeIdentifierError(RuntimeFlowError):
    def __init__(self, database_id: str, identifier: str, role: str):
        self.database_id = database_id
        self.identifier = identifier
        self.role = role
        super().__init__(
            f'Refusing create operation for "{database_id}": unsafe {role} identifier "{identifier}"'
        )
