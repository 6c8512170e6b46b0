"""
Domain exceptions raised inside the core

The GameController catches these and converts them into no-op result
dictionaries; they never reach presentation code.
"""


class EngineError(Exception):
    """Base class for rejected engine operations"""

    pass


class StakeRejected(EngineError):
    """A stake could not be applied to the round"""

    pass


class ClaimRejected(EngineError):
    """A bet is not (or no longer) claimable"""

    pass
