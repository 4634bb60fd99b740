"""Error taxonomy shared by every resource and the resource set executor.

Control flow is decided by classification predicates, never by message
matching or identity checks, so errors can be wrapped across boundaries:

    try:
        ...
    except Exception as e:
        if is_cancel_pass(e):
            ...  # precondition not met yet, end quietly
        raise

CLASSIFICATION:
- The outermost taxonomy error in the ``raise ... from`` (``__cause__``) chain
  decides the kind. Plain exceptions (``RuntimeError``, ``ClientError``...)
  in between are transparent.
- NotFound and OperationInProgress at a precondition boundary cancel the
  pass (success, early stop).
- ExecutionError and unclassified transport errors fail the pass and are
  retried on the next scheduled pass.
- InvalidConfig is raised at construction time only and is fatal.
"""

from __future__ import annotations

# Upper bound for cause chain traversal (guards against cyclic chains)
MAX_CAUSE_DEPTH = 32


class OperatorError(Exception):
    """Base class for all classified operator errors."""

    pass


class NotFoundError(OperatorError):
    """Raised when a cloud object or working context entry does not exist."""

    pass


class AlreadyExistsError(OperatorError):
    """Raised when an object to be created already exists."""

    pass


class OperationInProgressError(OperatorError):
    """Raised when the cloud object is mid-transition (e.g. being deleted)."""

    pass


class ExecutionError(OperatorError):
    """Raised when an operation failed and the pass must be retried."""

    pass


class InvalidConfigError(OperatorError):
    """Raised at construction time when a component is misconfigured."""

    pass


def classify(err: BaseException | None) -> type[OperatorError] | None:
    """Return the taxonomy kind of an error, or None if unclassified.

    Args:
        err: Any exception, possibly wrapping a classified one.

    Returns:
        The most specific taxonomy class of the outermost classified error.
    """
    seen: set[int] = set()
    current = err
    depth = 0

    while current is not None and depth < MAX_CAUSE_DEPTH:
        if id(current) in seen:
            break
        seen.add(id(current))

        if isinstance(current, OperatorError):
            for kind in _KINDS:
                if isinstance(current, kind):
                    return kind
            return OperatorError

        current = current.__cause__
        depth += 1

    return None


_KINDS: tuple[type[OperatorError], ...] = (
    NotFoundError,
    AlreadyExistsError,
    OperationInProgressError,
    ExecutionError,
    InvalidConfigError,
)


def is_not_found(err: BaseException | None) -> bool:
    return classify(err) is NotFoundError


def is_already_exists(err: BaseException | None) -> bool:
    return classify(err) is AlreadyExistsError


def is_operation_in_progress(err: BaseException | None) -> bool:
    return classify(err) is OperationInProgressError


def is_execution_error(err: BaseException | None) -> bool:
    return classify(err) is ExecutionError


def is_invalid_config(err: BaseException | None) -> bool:
    return classify(err) is InvalidConfigError


def is_cancel_pass(err: BaseException | None) -> bool:
    """Check if an error means "precondition not met yet, end the pass quietly"."""
    return classify(err) in (NotFoundError, OperationInProgressError)
