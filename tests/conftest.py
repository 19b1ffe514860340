import os
import pathlib
import sys
from datetime import date, datetime, timedelta
from io import BytesIO

import pytest
from PIL import Image
from pptx import Presentation
from pptx.util import Inches

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from certengine.app import create_app, db
from certengine.models import Attendance, Event, Registration


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


@pytest.fixture
def app(tmp_path, monkeypatch):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    for key in ("SMTP_HOST", "SMTP_PORT", "SMTP_FROM_DEFAULT"):
        monkeypatch.delenv(key, raising=False)
    application = create_app(
        {
            "TESTING": True,
            "CERT_STORAGE_ROOT": str(tmp_path / "primary"),
            "CERT_FALLBACK_ROOT": str(tmp_path / "fallback"),
            "CERT_VERIFY_BASE_URL": "https://certs.example.com/verify",
            "CERT_RENDER_TIMEOUT": 20,
            "CERT_FONT_DIR": str(tmp_path / "fonts"),
        }
    )
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


def make_pptx(paragraphs, *, split_runs=False) -> bytes:
    """Build a one-slide presentation with a text box per paragraph.

    With ``split_runs`` each paragraph is written as one run per character so
    placeholder tokens straddle run boundaries.
    """

    presentation = Presentation()
    slide = presentation.slides.add_slide(presentation.slide_layouts[6])
    for index, text in enumerate(paragraphs):
        box = slide.shapes.add_textbox(
            Inches(1), Inches(1 + index), Inches(6), Inches(1)
        )
        paragraph = box.text_frame.paragraphs[0]
        pieces = list(text) if split_runs else [text]
        for piece in pieces:
            run = paragraph.add_run()
            run.text = piece
    buffer = BytesIO()
    presentation.save(buffer)
    return buffer.getvalue()


def make_pptx_table(rows, *, title="Certificate") -> bytes:
    """One slide holding a grouped title box and a table built from ``rows``."""

    presentation = Presentation()
    slide = presentation.slides.add_slide(presentation.slide_layouts[6])
    group = slide.shapes.add_group_shape()
    box = group.shapes.add_textbox(Inches(1), Inches(0.5), Inches(6), Inches(1))
    box.text_frame.text = title
    table = slide.shapes.add_table(
        len(rows), len(rows[0]), Inches(1), Inches(2), Inches(6), Inches(2)
    ).table
    for r, row in enumerate(rows):
        for c, text in enumerate(row):
            table.cell(r, c).text = text
    buffer = BytesIO()
    presentation.save(buffer)
    return buffer.getvalue()


def pptx_table_text(data: bytes) -> list:
    presentation = Presentation(BytesIO(data))
    cells = []
    for shape in presentation.slides[0].shapes:
        if shape.has_table:
            for row in shape.table.rows:
                cells.extend(cell.text for cell in row.cells)
    return cells


def pptx_text(data: bytes) -> str:
    presentation = Presentation(BytesIO(data))
    texts = []
    for slide in presentation.slides:
        for shape in slide.shapes:
            if shape.has_text_frame:
                texts.append(shape.text_frame.text)
    return "\n".join(texts)


def make_png(size=(40, 20), color=(200, 30, 30)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def seed_event(*, participants=3, checked_in=None, title="Data Summit"):
    """Create an event with confirmed registrations.

    ``checked_in`` lists the indexes that attended; defaults to everyone.
    """

    event = Event(
        title=title,
        location="Nairobi",
        start_date=date(2025, 1, 15),
        end_date=date(2025, 1, 16),
        organizer_name="Open Data Society",
    )
    db.session.add(event)
    db.session.flush()
    attended = set(range(participants) if checked_in is None else checked_in)
    registrations = []
    base = datetime(2025, 1, 15, 9, 0)
    for index in range(participants):
        registration = Registration(
            event_id=event.id,
            name=f"Participant {chr(65 + index)}",
            email=f"p{index}@example.com",
            registration_code=f"REG-{1000 + index}",
        )
        db.session.add(registration)
        db.session.flush()
        if index in attended:
            db.session.add(
                Attendance(
                    registration_id=registration.id,
                    checked_in_at=base + timedelta(minutes=index),
                )
            )
        registrations.append(registration)
    db.session.commit()
    return event, registrations
