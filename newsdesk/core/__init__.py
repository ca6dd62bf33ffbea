"""Core recovery and retry primitives."""

from .errors import NewsdeskError, ParseFailure, ValidationFailure
from .json_recovery import recover, safe_json_parse
from .retry import RetryPolicy, compute_delay, run_validated, run_with_policy

__all__ = [
    "NewsdeskError",
    "ParseFailure",
    "RetryPolicy",
    "ValidationFailure",
    "compute_delay",
    "recover",
    "run_validated",
    "run_with_policy",
    "safe_json_parse",
]
