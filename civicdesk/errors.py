# Error kinds raised by the lifecycle, review, escalation and store layers

class CivicDeskError(Exception):
    """Base class; `code` is the machine-readable error name sent to API clients."""
    code = "civic_desk_error"

    def __init__(self, message: str = "", **context):
        super().__init__(message or self.code)
        self.context = context


class NotFound(CivicDeskError):
    code = "not_found"


class InvalidTransition(CivicDeskError):
    code = "invalid_transition"


class ReviewInProgress(InvalidTransition):
    code = "review_in_progress"


class ConflictingTransition(CivicDeskError):
    """The precondition held at read time but not at write time."""
    code = "conflicting_transition"


class WorkerUnavailable(CivicDeskError):
    code = "worker_unavailable"


class AlreadyApproved(CivicDeskError):
    code = "already_approved"


class AlreadyAssigned(CivicDeskError):
    code = "already_assigned"


class DependencyUnavailable(CivicDeskError):
    code = "dependency_unavailable"
