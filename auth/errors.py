"""
auth/errors.py -- Exceptions for faults that are not domain outcomes.

Duplicate usernames, unknown ids and policy refusals are ordinary results and
travel as auth.results.Failure values. The exceptions here cover programmer
and deployment mistakes only: they are raised, never returned, and the HTTP
layer turns them into a generic 500.
"""


class InvalidInputError(ValueError):
    """An argument that no caller should ever pass (e.g. an empty password to the hasher)."""


class ConfigurationError(RuntimeError):
    """Required configuration is missing or unusable (e.g. an empty signing key)."""
