from __future__ import annotations

from typing import Iterable


class CertificateEngineError(Exception):
    """Base class for every error the certificate engine reports."""

    code = "CertificateEngineError"
    status = 500

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def payload(self) -> dict:
        return {"ok": False, "error": self.code, "message": self.message}


class InvalidRequest(CertificateEngineError):
    code = "InvalidRequest"
    status = 400


class UnsupportedFormat(CertificateEngineError):
    """Raised when an uploaded template is not a valid document of its kind."""

    code = "UnsupportedFormat"
    status = 400


class UnknownField(CertificateEngineError):
    """Raised when a mapping names a placeholder or data field that does not exist."""

    code = "UnknownField"
    status = 400

    def __init__(self, keys: Iterable[str], message: str | None = None):
        self.keys = list(keys)
        super().__init__(message or f"Unknown field(s): {', '.join(self.keys)}")

    def payload(self) -> dict:
        data = super().payload()
        data["keys"] = self.keys
        return data


class IncompleteMapping(CertificateEngineError):
    """Raised before any rendering when a template still has unmapped placeholders."""

    code = "IncompleteMapping"
    status = 400

    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(f"Please map all placeholders: {', '.join(self.missing)}")

    def payload(self) -> dict:
        data = super().payload()
        data["missing"] = self.missing
        return data


class NoEligibleParticipants(CertificateEngineError):
    code = "NoEligibleParticipants"
    status = 400


class TemplateNotFound(CertificateEngineError):
    code = "TemplateNotFound"
    status = 404


class EventNotFound(CertificateEngineError):
    code = "EventNotFound"
    status = 404


class NotFound(CertificateEngineError):
    """Unknown verification or certificate code."""

    code = "NotFound"
    status = 404


# Per-participant failures. These are recorded in the batch result list and
# never escape generate_batch.


class NotEligible(CertificateEngineError):
    code = "NotEligible"
    status = 400


class AlreadyIssued(CertificateEngineError):
    code = "AlreadyIssued"
    status = 409


class MissingFieldValue(CertificateEngineError):
    code = "MissingFieldValue"
    status = 422

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No value resolved for field {key!r}")


class AssetUnavailable(CertificateEngineError):
    code = "AssetUnavailable"
    status = 422

    def __init__(self, ref: str | None, message: str | None = None):
        self.ref = ref
        super().__init__(message or f"Asset unavailable: {ref!r}")


class RenderFailure(CertificateEngineError):
    code = "RenderFailure"
    status = 500


class RenderTimeout(RenderFailure):
    code = "RenderTimeout"


class StorageUnavailable(CertificateEngineError):
    code = "StorageUnavailable"
    status = 503


class CodeSpaceExhausted(CertificateEngineError):
    code = "CodeSpaceExhausted"
    status = 500
