"""Exception hierarchy for the rule engine."""

from __future__ import annotations


class EngineError(Exception):
    """Raised when an evaluation cannot be trusted (caller or authoring bug)."""


class ClassificationError(EngineError):
    """Raised when an entity is classified with both sides absent."""


class AssertionRegistrationError(EngineError):
    """Raised when an assertion is registered outside a rule body invocation."""


class MissingLocationError(EngineError):
    """Raised when a document-model node carries no Location."""


class RuleError(Exception):
    """A rule violation raised from inside an assertion predicate."""

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __repr__(self) -> str:
        return f"RuleError({self.message!r})"
