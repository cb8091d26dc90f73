"""Domain errors.

Only a malformed criteria payload is an error. Missing or unresolvable
targets, unknown agents and absent geo triples are normal empty results.
"""

from __future__ import annotations


class EvidencePipelineError(Exception):
    """Base class for errors raised by this package."""


class MalformedCriteria(EvidencePipelineError):
    """Raised when a criteria payload cannot be parsed into criteria."""

    def __init__(self, reason: str, payload: object = None) -> None:
        self.reason = reason
        self.payload = payload
        super().__init__(f"malformed criteria: {reason}")
