"""Client for the Provisioner API with a local attempt cache."""

from .attempt_cache import AttemptCache, AttemptCreation, AttemptsApi, AttemptsApiError

__all__ = ["AttemptCache", "AttemptCreation", "AttemptsApi", "AttemptsApiError"]
