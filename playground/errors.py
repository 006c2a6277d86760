"""
Error taxonomy for the playground.

These exceptions are raised by the protocol adapter and the engine process
handle and caught at the turn controller boundary. None of them is allowed to
reach the display layer: the controller turns each one into a rejected move
or an error status.

A position with no legal move is deliberately absent from this list. It is an
ordinary game outcome, handled by status derivation.
"""


class PlaygroundError(Exception):
    """Base class for every error raised by this project."""


class IllegalMoveError(PlaygroundError):
    """A move proposal that the rules oracle does not accept."""


class ProtocolViolationError(PlaygroundError):
    """The engine sent a reply that cannot be parsed or applied."""


class EngineUnavailableError(PlaygroundError):
    """The engine process could not be started, has exited, or timed out."""
