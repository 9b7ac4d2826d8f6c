############################################################
#
# lingualink - Resilient Backend Balancer and Translation Gateway
#
# exceptions.py: Error taxonomy shared by the resilience core
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Exceptions raised by the backend balancer and translation client."""

from typing import Optional


class ConfigurationError(RuntimeError):
    """Startup configuration is unusable (no backends, no credentials, bad URL)."""


class PreconditionError(ValueError):
    """Caller input was rejected before any network attempt."""


class BackendStatusError(Exception):
    """A backend answered with a non-2xx status."""

    def __init__(self, backend_id: int, status_code: int, detail: str = ""):
        self.backend_id = backend_id
        self.status_code = status_code
        self.detail = detail
        message = f"HTTP {status_code} from backend {backend_id}"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)


class BackendsExhaustedError(Exception):
    """Every attempt of a resilient request failed."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"All backends failed after {attempts} attempts. "
            f"Last error: {last_error or 'unknown error'}"
        )


class TranslationProviderError(Exception):
    """The translation provider call failed or returned an unusable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
