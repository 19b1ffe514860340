"""Batch certificate generation with per-participant failure isolation."""

from __future__ import annotations

import enum
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Union

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..app import db
from ..errors import (
    AlreadyIssued,
    CertificateEngineError,
    CodeSpaceExhausted,
    EventNotFound,
    InvalidRequest,
    NoEligibleParticipants,
    NotEligible,
    RenderTimeout,
    StorageUnavailable,
)
from ..models import Certificate, Event, Registration
from ..shared import codes
from ..shared.data_fields import DataFieldRegistry
from ..shared.storage import StoredObject
from .attendance import eligible_registrations
from .rendering import RenderedArtifact, renderer_for
from .resolver import DataResolver
from .templates import get_template, require_ready


class ParticipantState(enum.Enum):
    NOT_STARTED = "NotStarted"
    RESOLVING = "Resolving"
    CODE_ASSIGNED = "CodeAssigned"
    RENDERED = "Rendered"
    PERSISTED = "Persisted"


@dataclass(frozen=True)
class GenerationSuccess:
    certificate_id: int
    certificate_code: str
    verification_code: str
    file_ref: str
    serial_number: int
    uses_fallback_storage: bool


@dataclass(frozen=True)
class GenerationFailure:
    reason: str
    message: str
    state: str


@dataclass(frozen=True)
class GenerationResult:
    participant_id: int
    participant_name: str | None
    outcome: Union[GenerationSuccess, GenerationFailure]

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, GenerationSuccess)

    def to_dict(self) -> dict:
        data = {
            "participantId": self.participant_id,
            "participantName": self.participant_name,
        }
        outcome = self.outcome
        if isinstance(outcome, GenerationSuccess):
            data.update(
                status="success",
                certificateId=outcome.certificate_id,
                certificateCode=outcome.certificate_code,
                verificationCode=outcome.verification_code,
                fileRef=outcome.file_ref,
                serialNumber=outcome.serial_number,
                usesFallbackStorage=outcome.uses_fallback_storage,
            )
        else:
            data.update(
                status="error",
                reason=outcome.reason,
                error=outcome.message,
                state=outcome.state,
            )
        return data


@dataclass(frozen=True)
class GenerationSummary:
    total: int
    successful: int
    failed: int

    def to_dict(self) -> dict:
        return {"total": self.total, "successful": self.successful, "failed": self.failed}


@dataclass(frozen=True)
class BatchOutcome:
    results: tuple[GenerationResult, ...]
    summary: GenerationSummary

    def to_dict(self) -> dict:
        return {
            "results": [result.to_dict() for result in self.results],
            "summary": self.summary.to_dict(),
        }


def _summarize(results: Iterable[GenerationResult]) -> BatchOutcome:
    results = tuple(results)
    successful = sum(1 for result in results if result.ok)
    return BatchOutcome(
        results=results,
        summary=GenerationSummary(
            total=len(results), successful=successful, failed=len(results) - successful
        ),
    )


def artifact_key(event_id: int, registration_id: int, certificate_code: str, fmt: str) -> str:
    return f"certificates/{event_id}/{registration_id}/{certificate_code}.{fmt}"


class BatchGenerator:
    def __init__(
        self,
        registry: DataFieldRegistry,
        storage,
        *,
        verify_base_url: str = "",
        render_timeout: float = 30.0,
        max_workers: int = 2,
        font_dir: str | None = None,
        code_generator: Callable[[], codes.CodePair] = codes.generate,
        issued_on: Callable[[], date] = date.today,
    ):
        self.resolver = DataResolver(registry, verify_base_url)
        self.storage = storage
        self.render_timeout = render_timeout
        self.max_workers = max(1, max_workers)
        self.font_dir = font_dir
        self.code_generator = code_generator
        self.issued_on = issued_on

    @classmethod
    def from_app(cls, app, registry: DataFieldRegistry, storage) -> "BatchGenerator":
        return cls(
            registry,
            storage,
            verify_base_url=app.config.get("CERT_VERIFY_BASE_URL", ""),
            render_timeout=app.config.get("CERT_RENDER_TIMEOUT", 30.0),
            max_workers=app.config.get("CERT_RENDER_WORKERS", 2),
            font_dir=app.config.get("CERT_FONT_DIR"),
        )

    # participant selection

    def _select_participants(
        self, event_id: int, participant_ids: Iterable[int] | None
    ) -> tuple[list[Registration], list[GenerationResult]]:
        eligible = eligible_registrations(event_id)
        if participant_ids is None:
            return eligible, []

        requested: list[int] = []
        for raw in participant_ids:
            try:
                value = int(raw)
            except (TypeError, ValueError):
                raise InvalidRequest(f"Invalid participant id {raw!r}")
            if value not in requested:
                requested.append(value)
        wanted = set(requested)
        selected = [registration for registration in eligible if registration.id in wanted]
        selected_ids = {registration.id for registration in selected}

        rejected: list[GenerationResult] = []
        for participant_id in requested:
            if participant_id in selected_ids:
                continue
            registration = db.session.get(Registration, participant_id)
            if registration is None or registration.event_id != event_id:
                message = f"Participant {participant_id} is not registered for event {event_id}"
                name = None
            else:
                message = f"Participant {participant_id} has not attended event {event_id}"
                name = registration.name
            rejected.append(
                GenerationResult(
                    participant_id=participant_id,
                    participant_name=name,
                    outcome=GenerationFailure(
                        reason=NotEligible.code,
                        message=message,
                        state=ParticipantState.NOT_STARTED.value,
                    ),
                )
            )
        return selected, rejected

    # per participant steps

    def _already_issued(self, event_id: int, registration_id: int) -> bool:
        return (
            db.session.query(Certificate.id)
            .filter(
                Certificate.event_id == event_id,
                Certificate.registration_id == registration_id,
            )
            .first()
            is not None
        )

    def _codes_taken(self, pair: codes.CodePair) -> bool:
        return (
            db.session.query(Certificate.id)
            .filter(
                (Certificate.certificate_code == pair.certificate_code)
                | (Certificate.verification_code == pair.verification_code)
            )
            .first()
            is not None
        )

    def _render_and_store(
        self, renderer, values: dict, key_for
    ) -> tuple[RenderedArtifact, StoredObject]:
        artifact = renderer.render(values)
        try:
            stored = self.storage.put(key_for(artifact.format), artifact.data)
        except OSError as exc:
            raise StorageUnavailable(f"Could not store certificate artifact: {exc}") from exc
        return artifact, stored

    def _discard(self, stored: StoredObject) -> None:
        try:
            self.storage.delete(stored.ref)
        except OSError:
            current_app.logger.warning("[CERT-STORAGE] could not remove %s", stored.ref)

    def _generate_one(
        self,
        pool: ThreadPoolExecutor,
        event: Event,
        template,
        renderer,
        registration: Registration,
        serial_number: int,
        track: Callable[[ParticipantState], None],
    ) -> GenerationSuccess:
        track(ParticipantState.RESOLVING)
        if self._already_issued(event.id, registration.id):
            raise AlreadyIssued(
                f"Participant {registration.id} already holds a certificate for event {event.id}"
            )
        issued_on = self.issued_on()

        for _ in range(codes.MAX_CODE_ATTEMPTS):
            pair = self.code_generator()
            if self._codes_taken(pair):
                continue
            track(ParticipantState.CODE_ASSIGNED)
            values = self.resolver.resolve(event, registration, serial_number, pair, issued_on)

            def key_for(
                fmt: str,
                event_id: int = event.id,
                registration_id: int = registration.id,
                code: str = pair.certificate_code,
            ) -> str:
                return artifact_key(event_id, registration_id, code, fmt)

            future = pool.submit(self._render_and_store, renderer, values, key_for)
            try:
                artifact, stored = future.result(timeout=self.render_timeout)
            except FuturesTimeout:
                future.cancel()
                raise RenderTimeout(
                    f"Rendering exceeded {self.render_timeout:g}s for participant {registration.id}"
                )
            track(ParticipantState.RENDERED)

            certificate = Certificate(
                event_id=event.id,
                registration_id=registration.id,
                template_id=template.id,
                certificate_code=pair.certificate_code,
                verification_code=pair.verification_code,
                serial_number=serial_number,
                file_ref=stored.ref,
                file_format=artifact.format,
                uses_fallback_storage=stored.uses_fallback,
                participant_name=registration.name,
                participant_email=registration.email,
                event_title=event.title,
                event_date=event.start_date,
                event_location=event.location,
            )
            db.session.add(certificate)
            try:
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                self._discard(stored)
                if self._already_issued(event.id, registration.id):
                    raise AlreadyIssued(
                        f"Participant {registration.id} already holds a certificate for event {event.id}"
                    )
                current_app.logger.warning(
                    "[CERT] code collision on insert event=%s registration=%s; drawing again",
                    event.id,
                    registration.id,
                )
                continue

            track(ParticipantState.PERSISTED)
            return GenerationSuccess(
                certificate_id=certificate.id,
                certificate_code=certificate.certificate_code,
                verification_code=certificate.verification_code,
                file_ref=certificate.file_ref,
                serial_number=serial_number,
                uses_fallback_storage=certificate.uses_fallback_storage,
            )

        raise CodeSpaceExhausted(
            f"Could not draw unused codes after {codes.MAX_CODE_ATTEMPTS} attempts"
        )

    def _next_serial(self, event_id: int) -> int:
        highest = (
            db.session.query(db.func.max(Certificate.serial_number))
            .filter(Certificate.event_id == event_id)
            .scalar()
        )
        return (highest or 0) + 1

    def generate_batch(
        self,
        event_id: int,
        template_id: int,
        participant_ids: Iterable[int] | None = None,
    ) -> BatchOutcome:
        template = get_template(template_id)
        require_ready(template)
        event = db.session.get(Event, event_id)
        if not event:
            raise EventNotFound(f"Event {event_id} not found")
        if template.event_id is not None and template.event_id != event.id:
            raise InvalidRequest(
                f"Template {template.id} belongs to event {template.event_id}, not {event.id}"
            )

        participants, rejected = self._select_participants(event.id, participant_ids)
        if not participants:
            raise NoEligibleParticipants("No eligible participants found")

        renderer = renderer_for(template, self.storage, font_dir=self.font_dir)
        serial_number = self._next_serial(event.id)
        results: list[GenerationResult] = []
        current_app.logger.info(
            "[CERT] batch start event=%s template=%s participants=%s",
            event.id,
            template.id,
            len(participants),
        )

        pool = ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            for registration in participants:
                state = {"value": ParticipantState.NOT_STARTED}

                def track(new_state: ParticipantState) -> None:
                    state["value"] = new_state

                try:
                    outcome = self._generate_one(
                        pool, event, template, renderer, registration, serial_number, track
                    )
                except CertificateEngineError as exc:
                    db.session.rollback()
                    current_app.logger.warning(
                        "[CERT-FAIL] event=%s registration=%s state=%s reason=%s detail=%s",
                        event.id,
                        registration.id,
                        state["value"].value,
                        exc.code,
                        exc.message,
                    )
                    outcome = GenerationFailure(exc.code, exc.message, state["value"].value)
                except Exception as exc:
                    db.session.rollback()
                    current_app.logger.exception(
                        "[CERT-FAIL] event=%s registration=%s state=%s",
                        event.id,
                        registration.id,
                        state["value"].value,
                    )
                    outcome = GenerationFailure("UnexpectedError", str(exc), state["value"].value)
                else:
                    current_app.logger.info(
                        "[CERT] event=%s registration=%s serial=%s ref=%s",
                        event.id,
                        registration.id,
                        serial_number,
                        outcome.file_ref,
                    )
                if not isinstance(outcome, GenerationFailure) or outcome.reason != AlreadyIssued.code:
                    serial_number += 1
                results.append(
                    GenerationResult(
                        participant_id=registration.id,
                        participant_name=registration.name,
                        outcome=outcome,
                    )
                )
        finally:
            # a timed-out render keeps its worker; never join it here
            pool.shutdown(wait=False, cancel_futures=True)

        batch = _summarize(results + rejected)
        current_app.logger.info(
            "[CERT] batch done event=%s template=%s total=%s successful=%s failed=%s",
            event.id,
            template.id,
            batch.summary.total,
            batch.summary.successful,
            batch.summary.failed,
        )
        return batch
