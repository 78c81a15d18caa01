"""
Error taxonomy for the colosseum core.

Fatal errors (``InvalidAgent``, ``UnknownAgent``, ``ObservationEncodingError``)
are raised at the call site. ``DuplicateCompletion`` is raised by helpers
that detect a second completion for the same id; the services that own the
population state catch it, log it and drop the duplicate.

Errors describing a bad input value also subclass ``ValueError`` so callers
that only guard against ``ValueError`` keep working.
"""
from typing import Optional


class ColosseumError(Exception):
    """Base class for all errors raised by the colosseum core."""


class InvalidAgent(ColosseumError, ValueError):
    """An agent was submitted without a completion callback, or twice."""


class UnknownAgent(ColosseumError, KeyError):
    """A prediction was requested for an agent that is not registered."""

    def __init__(self, agent_id: str):
        super().__init__(agent_id)
        self.agent_id = agent_id

    def __str__(self) -> str:
        return f"Unknown agent: {self.agent_id}"


class ObservationEncodingError(ColosseumError, ValueError):
    """An observation or action vector has the wrong dimensionality."""

    def __init__(
        self,
        message: str,
        agent_id: Optional[str] = None,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
    ):
        super().__init__(message)
        self.agent_id = agent_id
        self.expected = expected
        self.actual = actual


class DuplicateCompletion(ColosseumError):
    """A match or fine-tune result arrived twice for the same id."""

    def __init__(self, completion_id: str, kind: str = 'completion'):
        super().__init__(f"Duplicate {kind} for {completion_id}")
        self.completion_id = completion_id
        self.kind = kind


class WorkerStopped(ColosseumError):
    """A request was made to a worker service that has been stopped."""


class InvalidTrajectoryStep(ColosseumError, ValueError):
    """A non-terminal trajectory record is missing its state or action."""
