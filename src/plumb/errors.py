"""Custom exception types for the plumb evaluation harness."""


class CaseLoadError(Exception):
    """Raised when a case-definition unit cannot be loaded.

    This is raised when:
    - A Python unit fails to import (syntax error, failing top-level code)
    - A YAML unit is not valid YAML or does not match the case schema
    - A unit exports neither ``case`` nor ``cases``
    - A case is vacuous (no structural and no behavioral assertions)

    A load failure is fatal for the whole run.
    """

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load case unit '{path}': {reason}")


class MissingCredentialError(Exception):
    """Raised when behavioral evals are requested without a model credential
    and the run is configured to treat that as fatal."""

    pass


class ModelClientError(Exception):
    """Raised by a model client when a request fails (network, auth, quota, provider error).

    The behavioral phase records every assertion of the affected case as failed
    with an ``API Error`` detail and the run continues.
    """

    pass
