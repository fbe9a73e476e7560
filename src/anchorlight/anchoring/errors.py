"""Exception hierarchy for anchoring.

These are raised internally and mapped onto result objects at the engine
boundary; callers of the public engine API see ``result.error`` instead.
"""

from __future__ import annotations


class AnchorError(Exception):
    """Base class for anchoring failures."""

    # Short name carried into result objects
    code = "AnchorError"


class RangeInvalidError(AnchorError):
    """A range's endpoints are detached, out of bounds or cannot be wrapped."""

    code = "RangeInvalid"


class NodeDetachedError(AnchorError):
    """A previously located text leaf is no longer in the document."""

    code = "NodeDetached"


class TextNotFoundError(AnchorError):
    """No candidate leaf contains the fragment text."""

    code = "TextNotFound"


class CollaboratorError(AnchorError):
    """The store or summariser failed, timed out or returned garbage."""

    code = "CollaboratorFailure"
