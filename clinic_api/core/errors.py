"""Error taxonomy shared by the booking API and the WhatsApp companion service.

Handlers raise these; ``clinic_api.core.handlers`` turns them into JSON responses.
"""
from typing import Any


class AppError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(AppError):
    """A required credential or URL is missing."""

    status_code = 500


class ValidationError(AppError):
    """A required request field is missing or malformed."""

    status_code = 400


class UpstreamError(AppError):
    """A third-party API answered with a non-success status (or not at all)."""

    def __init__(self, message: str, status_code: int = 502, details: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class VerificationError(AppError):
    status_code = 400
    reason = "verification_failed"


class InvalidInput(VerificationError):
    reason = "invalid_input"


class NoPendingCode(VerificationError):
    reason = "no_pending_code"

    def __init__(self) -> None:
        super().__init__("No hay código pendiente para este número. Solicita uno nuevo.")


class CodeExpired(VerificationError):
    reason = "code_expired"

    def __init__(self) -> None:
        super().__init__("El código ha expirado. Solicita uno nuevo.")


class TooManyAttempts(VerificationError):
    reason = "too_many_attempts"

    def __init__(self) -> None:
        super().__init__("Demasiados intentos fallidos. Solicita un nuevo código.")


class CodeMismatch(VerificationError):
    reason = "code_mismatch"

    def __init__(self, remaining: int) -> None:
        super().__init__(f"Código incorrecto. Intentos restantes: {remaining}")
        self.remaining = remaining
