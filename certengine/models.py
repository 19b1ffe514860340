from __future__ import annotations

from sqlalchemy.orm import validates

from .app import db

TEMPLATE_KIND_FLAT_DOCUMENT = "flatDocument"
TEMPLATE_KIND_CANVAS = "canvas"
TEMPLATE_KINDS = (TEMPLATE_KIND_FLAT_DOCUMENT, TEMPLATE_KIND_CANVAS)


# Collaborator tables. Events, registrations and check-ins are owned by the
# surrounding application; only the columns the engine reads live here.


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    location = db.Column(db.String(255))
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    organizer_name = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, server_default=db.func.now())


class Registration(db.Model):
    __tablename__ = "registrations"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64))
    organization = db.Column(db.String(255))
    status = db.Column(db.String(32), nullable=False, default="confirmed")
    registration_code = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    event = db.relationship("Event", backref="registrations")
    attendance = db.relationship(
        "Attendance", uselist=False, back_populates="registration"
    )

    @validates("email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return value.lower()


class Attendance(db.Model):
    __tablename__ = "attendance"

    id = db.Column(db.Integer, primary_key=True)
    registration_id = db.Column(
        db.Integer,
        db.ForeignKey("registrations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    checked_in_at = db.Column(db.DateTime, nullable=False)

    registration = db.relationship("Registration", back_populates="attendance")


# Engine tables


class CertificateTemplate(db.Model):
    __tablename__ = "certificate_templates"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=True
    )
    name = db.Column(db.String(255), nullable=False)
    kind = db.Column(db.String(32), nullable=False)
    file_name = db.Column(db.String(255))
    raw_content_ref = db.Column(db.String(512))
    placeholders = db.Column(db.JSON, nullable=False, default=list)
    placeholder_mapping = db.Column(db.JSON, nullable=False, default=dict)
    canvas_spec = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    @property
    def is_global(self) -> bool:
        return self.event_id is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "name": self.name,
            "kind": self.kind,
            "fileName": self.file_name,
            "extractedPlaceholders": list(self.placeholders or []),
            "placeholderMapping": dict(self.placeholder_mapping or {}),
            "canvasSpec": self.canvas_spec,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    registration_id = db.Column(
        db.Integer,
        db.ForeignKey("registrations.id", ondelete="CASCADE"),
        nullable=False,
    )
    template_id = db.Column(
        db.Integer,
        db.ForeignKey("certificate_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    certificate_code = db.Column(db.String(64), nullable=False, unique=True)
    verification_code = db.Column(db.String(64), nullable=False, unique=True)
    serial_number = db.Column(db.Integer, nullable=False)
    file_ref = db.Column(db.String(512), nullable=False)
    file_format = db.Column(db.String(16), nullable=False)
    uses_fallback_storage = db.Column(db.Boolean, nullable=False, default=False)
    participant_name = db.Column(db.String(255))
    participant_email = db.Column(db.String(255))
    event_title = db.Column(db.String(255))
    event_date = db.Column(db.Date)
    event_location = db.Column(db.String(255))
    email_sent = db.Column(db.Boolean, nullable=False, default=False)
    email_sent_at = db.Column(db.DateTime)
    issued_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint(
            "event_id", "registration_id", name="uix_certificate_event_registration"
        ),
    )

    event = db.relationship("Event")
    registration = db.relationship("Registration")
    template = db.relationship("CertificateTemplate")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "registrationId": self.registration_id,
            "templateId": self.template_id,
            "certificateCode": self.certificate_code,
            "verificationCode": self.verification_code,
            "serialNumber": self.serial_number,
            "fileRef": self.file_ref,
            "fileFormat": self.file_format,
            "usesFallbackStorage": self.uses_fallback_storage,
            "participantName": self.participant_name,
            "participantEmail": self.participant_email,
            "emailSent": self.email_sent,
            "issuedAt": self.issued_at.isoformat() if self.issued_at else None,
        }
