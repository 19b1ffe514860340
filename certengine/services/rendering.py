from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from io import BytesIO
from typing import Callable, Mapping, Union

import qrcode
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from ..errors import AssetUnavailable, MissingFieldValue, RenderFailure
from ..models import TEMPLATE_KIND_CANVAS, TEMPLATE_KIND_FLAT_DOCUMENT, CertificateTemplate
from ..shared.canvas_spec import (
    CanvasSpec,
    ImageElement,
    QrCodeElement,
    TextElement,
    parse_canvas_spec,
)
from ..shared.placeholders import PLACEHOLDER_RE, has_placeholder, substitute
from .resolver import field_lookup
from .templates import iter_text_frames, open_presentation

logger = logging.getLogger("certengine.rendering")

MIMETYPES = {
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "png": "image/png",
}


@dataclass(frozen=True)
class RenderedArtifact:
    data: bytes
    format: str

    @property
    def mimetype(self) -> str:
        return MIMETYPES.get(self.format, "application/octet-stream")


@dataclass(frozen=True)
class FlatDocumentSource:
    content_ref: str
    mapping: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CanvasSource:
    spec: CanvasSpec
    mapping: Mapping[str, str] = field(default_factory=dict)


TemplateSource = Union[FlatDocumentSource, CanvasSource]


def template_source(template: CertificateTemplate) -> TemplateSource:
    mapping = dict(template.placeholder_mapping or {})
    if template.kind == TEMPLATE_KIND_FLAT_DOCUMENT:
        return FlatDocumentSource(content_ref=template.raw_content_ref, mapping=mapping)
    if template.kind == TEMPLATE_KIND_CANVAS:
        return CanvasSource(spec=parse_canvas_spec(template.canvas_spec or {}), mapping=mapping)
    raise RenderFailure(f"Template {template.id} has unknown kind {template.kind!r}")


def _placeholder_lookup(
    mapping: Mapping[str, str], values: Mapping[str, str], *, direct: bool
) -> Callable[[str], str]:
    """Resolve a placeholder through the template mapping to its field value.

    Canvas content may name registry keys directly, so ``direct`` lets an
    unmapped identifier stand for the field of the same name.
    """

    lookup_field = field_lookup(values)

    def _lookup(placeholder: str) -> str:
        key = mapping.get(placeholder) or (placeholder if direct else None)
        if not key:
            raise MissingFieldValue(placeholder)
        return lookup_field(key)

    return _lookup


def _read_asset(storage, ref: str | None) -> bytes:
    if not ref:
        raise AssetUnavailable(ref)
    try:
        return storage.read(ref)
    except OSError as exc:
        raise AssetUnavailable(ref) from exc


class FlatDocumentRenderer:
    format = "pptx"

    def __init__(self, source: FlatDocumentSource, storage, **_):
        self.source = source
        self.storage = storage

    def _replace_in_paragraph(self, paragraph, lookup) -> None:
        runs = paragraph.runs
        full_text = "".join(run.text for run in runs)
        if not has_placeholder(full_text):
            return
        tokens_in_runs = sum(len(PLACEHOLDER_RE.findall(run.text)) for run in runs)
        if tokens_in_runs == len(PLACEHOLDER_RE.findall(full_text)):
            for run in runs:
                if has_placeholder(run.text):
                    run.text = substitute(run.text, lookup)
            return
        # a token is split across runs; the first run keeps its formatting
        runs[0].text = substitute(full_text, lookup)
        for run in runs[1:]:
            run.text = ""

    def render(self, values: Mapping[str, str]) -> RenderedArtifact:
        presentation = open_presentation(_read_asset(self.storage, self.source.content_ref))
        lookup = _placeholder_lookup(self.source.mapping, values, direct=False)
        for text_frame in iter_text_frames(presentation):
            for paragraph in text_frame.paragraphs:
                self._replace_in_paragraph(paragraph, lookup)
        buffer = BytesIO()
        try:
            presentation.save(buffer)
        except (OSError, ValueError) as exc:
            raise RenderFailure(f"Could not write presentation: {exc}") from exc
        return RenderedArtifact(data=buffer.getvalue(), format=self.format)


class CanvasRenderer:
    format = "png"

    def __init__(self, source: CanvasSource, storage, font_dir: str | None = None):
        self.source = source
        self.storage = storage
        self.font_dir = font_dir
        self._fonts: dict[tuple[str, int], ImageFont.ImageFont] = {}

    def _font(self, name: str, size: int):
        cache_key = (name, size)
        if cache_key in self._fonts:
            return self._fonts[cache_key]
        candidates = [name]
        if self.font_dir:
            candidates.insert(0, os.path.join(self.font_dir, f"{name}.ttf"))
        font = None
        for candidate in candidates:
            try:
                font = ImageFont.truetype(candidate, size)
                break
            except OSError:
                continue
        if font is None:
            logger.warning("[CERT-RENDER] font %s unavailable; using default", name)
            font = ImageFont.load_default(size=size)
        self._fonts[cache_key] = font
        return font

    def _open_image(self, ref: str | None) -> Image.Image:
        data = _read_asset(self.storage, ref)
        try:
            with Image.open(BytesIO(data)) as img:
                return img.convert("RGBA")
        except (UnidentifiedImageError, OSError) as exc:
            raise RenderFailure(f"Asset {ref!r} is not a readable image") from exc

    def _draw_text(self, canvas: Image.Image, element: TextElement, lookup) -> None:
        text = substitute(element.content, lookup)
        if not text:
            return
        draw = ImageDraw.Draw(canvas)
        font = self._font(element.font, element.size)
        x = element.x
        if element.align != "left":
            width = draw.textlength(text, font=font)
            x = x - width / 2 if element.align == "center" else x - width
        draw.text((round(x), round(element.y)), text, font=font, fill=element.color)

    def _draw_image(self, canvas: Image.Image, element: ImageElement) -> None:
        img = self._open_image(element.src)
        img = img.resize((round(element.width), round(element.height)), Image.LANCZOS)
        canvas.paste(img, (round(element.x), round(element.y)), img)

    def _draw_qr_code(self, canvas: Image.Image, element: QrCodeElement, lookup) -> None:
        content = substitute(element.content, lookup)
        qr = qrcode.QRCode(
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=1,
        )
        qr.add_data(content)
        qr.make(fit=True)
        symbol = qr.make_image(fill_color=element.color, back_color="white").convert("RGBA")
        symbol = symbol.resize((round(element.width), round(element.height)), Image.NEAREST)
        canvas.paste(symbol, (round(element.x), round(element.y)), symbol)

    def render(self, values: Mapping[str, str]) -> RenderedArtifact:
        spec = self.source.spec
        lookup = _placeholder_lookup(self.source.mapping, values, direct=True)
        try:
            canvas = Image.new("RGBA", (spec.width, spec.height), spec.background_color)
        except ValueError as exc:
            raise RenderFailure(f"Invalid background colour {spec.background_color!r}") from exc
        if spec.background:
            background = self._open_image(spec.background)
            background = background.resize((spec.width, spec.height), Image.LANCZOS)
            canvas.alpha_composite(background)

        # list order is paint order: later elements overlay earlier ones
        for element in spec.elements:
            try:
                if isinstance(element, TextElement):
                    self._draw_text(canvas, element, lookup)
                elif isinstance(element, ImageElement):
                    self._draw_image(canvas, element)
                elif isinstance(element, QrCodeElement):
                    self._draw_qr_code(canvas, element, lookup)
            except ValueError as exc:
                raise RenderFailure(f"Could not draw {element.type} element: {exc}") from exc

        buffer = BytesIO()
        try:
            canvas.convert("RGB").save(buffer, format="PNG")
        except (OSError, ValueError) as exc:
            raise RenderFailure(f"Could not encode PNG: {exc}") from exc
        return RenderedArtifact(data=buffer.getvalue(), format=self.format)


RENDERERS = {
    FlatDocumentSource: FlatDocumentRenderer,
    CanvasSource: CanvasRenderer,
}


def renderer_for(template: CertificateTemplate, storage, font_dir: str | None = None):
    source = template_source(template)
    return RENDERERS[type(source)](source, storage, font_dir=font_dir)


def render(
    template: CertificateTemplate,
    values: Mapping[str, str],
    storage,
    font_dir: str | None = None,
) -> RenderedArtifact:
    return renderer_for(template, storage, font_dir=font_dir).render(values)
