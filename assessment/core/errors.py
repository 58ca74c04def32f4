"""
Domain errors raised by the assembly and grading engine.
"""


class AssessmentError(Exception):
    """Base class for engine errors."""


class ConfigurationError(AssessmentError, ValueError):
    """Malformed selector or pool configuration, raised before any store access."""


class PoolNotFound(AssessmentError):
    pass


class AssessmentNotFound(AssessmentError):
    pass


class AlreadySubmitted(AssessmentError):
    """The assessment was already graded; re-grading would double-count history."""


class AssessmentExpired(AssessmentError):
    pass


class SandboxUnavailable(AssessmentError):
    """The sandbox could not run at all (spawn failure, broken worker).

    Distinct from logical failures such as timeouts or exceptions raised by
    submitted code, which are ordinary "case failed" verdicts.
    """


class HistoryPersistenceError(AssessmentError):
    pass


class NoQuestionsAvailable(AssessmentError):
    """Neither the bank nor the generator produced a single question."""


class QuestionNotFound(AssessmentError):
    pass
