"""Domain errors raised by the gamification core and the store."""


class HabitNudgeError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(HabitNudgeError):
    status_code = 404


class AlreadyCompletedError(HabitNudgeError):
    """Completion attempted for a date already present in the log."""

    status_code = 400

    def __init__(self, message: str = "Habit already completed today"):
        super().__init__(message)


class AlreadyExistsError(HabitNudgeError):
    status_code = 409


class ConcurrentUpdateError(HabitNudgeError):
    """A conditional write kept losing to concurrent writers."""

    status_code = 409


class PersistenceError(HabitNudgeError):
    """The document store rejected a read or write."""

    status_code = 500
