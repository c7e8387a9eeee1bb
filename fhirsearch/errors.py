from typing import Union, List

from fhir.resources.R4B.operationoutcome import OperationOutcome


class FHIRSearchError(Exception):
    errors = None

    def __init__(self, error: Union[None, str, List[str]] = None, severity="error", code="invalid"):
        self.severity = severity
        self.code = code
        if isinstance(error, list):
            self.errors = error
        elif isinstance(error, str):
            self.errors = [error]
        else:
            self.errors = []

        super().__init__(self.errors)

    def format(self) -> OperationOutcome:
        issues = [
            {"severity": self.severity, "code": self.code, "diagnostics": err}
            for err in self.errors
        ]
        return OperationOutcome(issue=issues)


class NotSupportedError(FHIRSearchError):
    """
    NotSupportedError is returned when trying to search a resource type the engine has no
    binding for.
    """

    def __init__(self, error: str):
        super().__init__(error, severity="error", code="not-supported")


class InvalidParameterError(FHIRSearchError):
    """
    InvalidParameterError is raised when a search parameter value cannot be parsed
    (malformed dates, quantities or prefixes).
    """

    def __init__(self, error: str):
        super().__init__(error, severity="error", code="invalid")


class HandlerRegistrationError(FHIRSearchError):
    """
    HandlerRegistrationError is raised when the handler registry is built with a key
    it does not know or a handler of the wrong kind.
    """

    def __init__(self, error: str):
        super().__init__(error, severity="fatal", code="exception")
