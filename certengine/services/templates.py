"""Template ingestion and placeholder mapping."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from io import BytesIO
from typing import Iterator, Mapping

from flask import current_app
from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE_TYPE
from werkzeug.utils import secure_filename

from ..app import db
from ..errors import (
    IncompleteMapping,
    InvalidRequest,
    StorageUnavailable,
    TemplateNotFound,
    UnknownField,
    UnsupportedFormat,
)
from ..models import (
    TEMPLATE_KIND_CANVAS,
    TEMPLATE_KIND_FLAT_DOCUMENT,
    TEMPLATE_KINDS,
    Certificate,
    CertificateTemplate,
)
from ..shared.canvas_spec import CanvasSpec, parse_canvas_spec
from ..shared.data_fields import DataFieldRegistry
from ..shared.placeholders import extract_placeholders

FLAT_DOCUMENT_EXTENSION = ".pptx"


@dataclass(frozen=True)
class IngestResult:
    extracted_placeholders: tuple[str, ...]
    canvas_spec: CanvasSpec | None


def iter_text_frames(presentation) -> Iterator:
    """Yield every text frame on every slide, descending into groups and tables."""

    def _walk(shapes):
        for shape in shapes:
            if shape.shape_type == MSO_SHAPE_TYPE.GROUP:
                yield from _walk(shape.shapes)
                continue
            if getattr(shape, "has_text_frame", False) and shape.has_text_frame:
                yield shape.text_frame
            if getattr(shape, "has_table", False) and shape.has_table:
                for row in shape.table.rows:
                    for cell in row.cells:
                        yield cell.text_frame

    for slide in presentation.slides:
        yield from _walk(slide.shapes)


def iter_paragraph_texts(presentation) -> Iterator[str]:
    for text_frame in iter_text_frames(presentation):
        for paragraph in text_frame.paragraphs:
            yield "".join(run.text for run in paragraph.runs)


def open_presentation(content: bytes):
    try:
        return Presentation(BytesIO(content))
    except Exception as exc:
        raise UnsupportedFormat(
            "Template is not a valid PowerPoint (.pptx) document"
        ) from exc


def ingest(
    kind: str,
    content: bytes | str | Mapping | None,
    *,
    registry: DataFieldRegistry,
    assets: Mapping[str, str] | None = None,
) -> IngestResult:
    """Derive the placeholder list (flat documents) or validated spec (canvas)."""

    if kind == TEMPLATE_KIND_FLAT_DOCUMENT:
        if not content:
            raise UnsupportedFormat("Flat-document templates need a .pptx file")
        presentation = open_presentation(content)
        placeholders = extract_placeholders(iter_paragraph_texts(presentation))
        return IngestResult(extracted_placeholders=tuple(placeholders), canvas_spec=None)

    if kind == TEMPLATE_KIND_CANVAS:
        spec = parse_canvas_spec(content if content is not None else {})
        unknown = [key for key in spec.referenced_fields() if key not in registry]
        if unknown:
            raise UnknownField(unknown)
        if assets:
            spec = spec.with_assets(assets)
        return IngestResult(extracted_placeholders=(), canvas_spec=spec)

    raise UnsupportedFormat(
        f"Unsupported template kind {kind!r}; expected one of {', '.join(TEMPLATE_KINDS)}"
    )


def _store_upload(storage, file_name: str, data: bytes) -> str:
    safe_name = secure_filename(file_name) or "upload"
    try:
        stored = storage.put(f"templates/{uuid.uuid4().hex}/{safe_name}", data)
    except OSError as exc:
        raise StorageUnavailable(f"Could not store template upload: {exc}") from exc
    if stored.uses_fallback:
        current_app.logger.warning(
            "[CERT-TEMPLATE] stored %s on fallback storage ref=%s", file_name, stored.ref
        )
    return stored.ref


def create_template(
    *,
    name: str,
    kind: str,
    registry: DataFieldRegistry,
    storage,
    event_id: int | None = None,
    file_name: str | None = None,
    file_data: bytes | None = None,
    canvas_spec: str | Mapping | None = None,
    assets: Mapping[str, bytes] | None = None,
) -> CertificateTemplate:
    name = (name or "").strip()
    if not name:
        raise InvalidRequest("Template name is required")
    if kind == TEMPLATE_KIND_FLAT_DOCUMENT and not (file_name or "").lower().endswith(
        FLAT_DOCUMENT_EXTENSION
    ):
        raise UnsupportedFormat("Flat-document templates must be .pptx files")

    if kind == TEMPLATE_KIND_CANVAS:
        # validated before any upload is stored
        spec = ingest(kind, canvas_spec, registry=registry).canvas_spec
        asset_refs: dict[str, str] = {}
        for asset_name, data in (assets or {}).items():
            asset_refs[asset_name] = _store_upload(storage, asset_name, data)
        if file_name and file_data:
            asset_refs[file_name] = _store_upload(storage, file_name, file_data)
            if not spec.background:
                spec = CanvasSpec(
                    width=spec.width,
                    height=spec.height,
                    background_color=spec.background_color,
                    background=file_name,
                    elements=spec.elements,
                )
        spec = spec.with_assets(asset_refs)
        template = CertificateTemplate(
            event_id=event_id,
            name=name,
            kind=kind,
            file_name=file_name,
            raw_content_ref=None,
            placeholders=[],
            placeholder_mapping={},
            canvas_spec=spec.to_dict(),
        )
    else:
        result = ingest(kind, file_data, registry=registry)
        template = CertificateTemplate(
            event_id=event_id,
            name=name,
            kind=kind,
            file_name=file_name,
            raw_content_ref=_store_upload(storage, file_name, file_data),
            placeholders=list(result.extracted_placeholders),
            placeholder_mapping={p: "" for p in result.extracted_placeholders},
            canvas_spec=None,
        )

    db.session.add(template)
    db.session.commit()
    current_app.logger.info(
        "[CERT-TEMPLATE] created id=%s kind=%s placeholders=%s",
        template.id,
        template.kind,
        ",".join(template.placeholders or []) or "-",
    )
    return template


def get_template(template_id: int) -> CertificateTemplate:
    template = db.session.get(CertificateTemplate, template_id)
    if not template:
        raise TemplateNotFound(f"Template {template_id} not found")
    return template


def list_templates(event_id: int | None = None) -> list[CertificateTemplate]:
    query = db.session.query(CertificateTemplate)
    if event_id is not None:
        query = query.filter(
            (CertificateTemplate.event_id == event_id)
            | (CertificateTemplate.event_id.is_(None))
        )
    return query.order_by(
        CertificateTemplate.created_at.desc(), CertificateTemplate.id.desc()
    ).all()


def delete_template(template_id: int, storage) -> None:
    template = get_template(template_id)
    refs = [template.raw_content_ref] if template.raw_content_ref else []
    spec = template.canvas_spec or {}
    if spec.get("background"):
        refs.append(spec["background"])
    refs.extend(
        element.get("src")
        for element in spec.get("elements", [])
        if element.get("type") == "image" and element.get("src")
    )
    db.session.query(Certificate).filter(Certificate.template_id == template.id).update(
        {Certificate.template_id: None}, synchronize_session=False
    )
    db.session.delete(template)
    db.session.commit()
    for ref in refs:
        try:
            storage.delete(ref)
        except FileNotFoundError:
            current_app.logger.info("[CERT-TEMPLATE] skipped foreign asset ref=%s", ref)
        except OSError:
            current_app.logger.warning("[CERT-TEMPLATE] could not remove ref=%s", ref)
    current_app.logger.info("[CERT-TEMPLATE] deleted id=%s", template_id)


# Placeholder mapping


def set_mapping(
    template: CertificateTemplate,
    mapping: Mapping[str, str],
    registry: DataFieldRegistry,
) -> CertificateTemplate:
    """Merge ``mapping`` into the template's placeholder mapping.

    Keys must be placeholders extracted from the template and non-empty values
    must be registry field keys; an empty value clears that entry.
    """

    if not isinstance(mapping, Mapping):
        raise InvalidRequest("Valid placeholder mapping is required")
    extracted = list(template.placeholders or [])
    unknown_keys = [key for key in mapping if key not in extracted]
    if unknown_keys:
        raise UnknownField(
            unknown_keys,
            f"Not placeholders of this template: {', '.join(unknown_keys)}",
        )
    bad_values = [
        str(value)
        for value in mapping.values()
        if value is not None and not isinstance(value, str)
    ]
    if bad_values:
        raise InvalidRequest("Mapping values must be data field keys")
    unknown_fields = [value for value in mapping.values() if value and value not in registry]
    if unknown_fields:
        raise UnknownField(unknown_fields)

    merged = {p: (template.placeholder_mapping or {}).get(p, "") for p in extracted}
    for key, value in mapping.items():
        merged[key] = value or ""
    template.placeholder_mapping = merged
    db.session.commit()
    return template


def missing_placeholders(template: CertificateTemplate) -> list[str]:
    mapping = template.placeholder_mapping or {}
    return [p for p in (template.placeholders or []) if not mapping.get(p)]


def is_ready(template: CertificateTemplate) -> bool:
    return not missing_placeholders(template)


def require_ready(template: CertificateTemplate) -> None:
    missing = missing_placeholders(template)
    if missing:
        raise IncompleteMapping(missing)
