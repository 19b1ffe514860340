import json
from io import BytesIO

import pytest
from conftest import make_png, make_pptx, pptx_text
from PIL import Image

from certengine.app import get_field_registry, get_storage
from certengine.errors import AssetUnavailable, MissingFieldValue
from certengine.services import templates
from certengine.services.rendering import (
    CanvasRenderer,
    CanvasSource,
    FlatDocumentRenderer,
    render,
    renderer_for,
)
from certengine.shared.canvas_spec import parse_canvas_spec

VALUES = {
    "participant_name": "Ada Lovelace",
    "event_title": "Data Summit",
    "verification_code": "VERIFY-ABCDEFGHJKLMNPQR",
}


def _flat_template(app, paragraphs, mapping, *, split_runs=False):
    template = templates.create_template(
        name="Flat",
        kind="flatDocument",
        registry=get_field_registry(app),
        storage=get_storage(app),
        file_name="flat.pptx",
        file_data=make_pptx(paragraphs, split_runs=split_runs),
    )
    templates.set_mapping(template, mapping, get_field_registry(app))
    return template


def test_flat_document_substitutes_placeholders(app):
    template = _flat_template(
        app,
        ["Awarded to {{name}}", "for attending {{event}}"],
        {"name": "participant_name", "event": "event_title"},
    )

    artifact = render(template, VALUES, get_storage(app))

    assert artifact.format == "pptx"
    text = pptx_text(artifact.data)
    assert "Awarded to Ada Lovelace" in text
    assert "for attending Data Summit" in text
    assert "{{" not in text


def test_flat_document_handles_tokens_split_across_runs(app):
    template = _flat_template(
        app, ["Hello {{name}}!"], {"name": "participant_name"}, split_runs=True
    )

    artifact = render(template, VALUES, get_storage(app))

    assert "Hello Ada Lovelace!" in pptx_text(artifact.data)


def test_flat_document_missing_value(app):
    template = _flat_template(app, ["{{code}}"], {"code": "certificate_code"})

    with pytest.raises(MissingFieldValue):
        render(template, VALUES, get_storage(app))


def test_flat_document_missing_source_file(app):
    template = _flat_template(app, ["{{name}}"], {"name": "participant_name"})
    get_storage(app).delete(template.raw_content_ref)

    with pytest.raises(AssetUnavailable):
        renderer_for(template, get_storage(app)).render(VALUES)


def test_renderer_selected_by_kind(app):
    template = _flat_template(app, ["{{name}}"], {"name": "participant_name"})

    assert isinstance(renderer_for(template, get_storage(app)), FlatDocumentRenderer)


def _canvas(app, spec):
    return CanvasRenderer(CanvasSource(parse_canvas_spec(spec)), get_storage(app))


def test_canvas_renders_png_with_text_and_qr(app):
    renderer = _canvas(
        app,
        {
            "width": 400,
            "height": 300,
            "backgroundColor": "#ffffff",
            "elements": [
                {"type": "text", "x": 200, "y": 20, "content": "{{participant_name}}", "align": "center"},
                {"type": "qrCode", "x": 10, "y": 100, "width": 120, "height": 120,
                 "content": "{{verification_code}}"},
            ],
        },
    )

    artifact = renderer.render(VALUES)

    assert artifact.format == "png"
    assert artifact.mimetype == "image/png"
    image = Image.open(BytesIO(artifact.data))
    assert image.size == (400, 300)
    # one-module quiet zone, then the dark finder pattern
    assert image.getpixel((11, 101))[:3] == (255, 255, 255)
    assert image.getpixel((16, 106))[:3] == (0, 0, 0)


def test_canvas_later_elements_overlay_earlier(app):
    storage = get_storage(app)
    red = storage.put("templates/t/red.png", make_png((50, 50), (255, 0, 0))).ref
    blue = storage.put("templates/t/blue.png", make_png((50, 50), (0, 0, 255))).ref
    renderer = _canvas(
        app,
        {
            "width": 100,
            "height": 100,
            "elements": [
                {"type": "image", "x": 0, "y": 0, "width": 50, "height": 50, "src": red},
                {"type": "image", "x": 25, "y": 25, "width": 50, "height": 50, "src": blue},
            ],
        },
    )

    image = Image.open(BytesIO(renderer.render(VALUES).data))

    assert image.getpixel((10, 10))[:3] == (255, 0, 0)
    assert image.getpixel((30, 30))[:3] == (0, 0, 255)
    assert image.getpixel((90, 90))[:3] == (255, 255, 255)


def test_canvas_missing_image_asset(app):
    renderer = _canvas(
        app,
        {"elements": [{"type": "image", "x": 0, "y": 0, "width": 5, "height": 5,
                       "src": "primary:templates/gone.png"}]},
    )

    with pytest.raises(AssetUnavailable):
        renderer.render(VALUES)


def test_canvas_template_via_ingest(app):
    template = templates.create_template(
        name="Canvas",
        kind="canvas",
        registry=get_field_registry(app),
        storage=get_storage(app),
        file_name="bg.png",
        file_data=make_png((300, 200), (10, 200, 10)),
        canvas_spec=json.dumps(
            {"width": 300, "height": 200,
             "elements": [{"type": "text", "x": 5, "y": 5, "content": "{{event_title}}"}]}
        ),
    )

    artifact = render(template, VALUES, get_storage(app))
    image = Image.open(BytesIO(artifact.data))

    assert image.getpixel((299, 199))[:3] == (10, 200, 10)
