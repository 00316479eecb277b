"""Tests for the PNG snapshot renderer."""

from io import BytesIO

import pytest
from PIL import Image

from stakemap.materialize import company_hulls, materialize
from stakemap.models import MapElements
from stakemap.renderer import MapRenderer, shape_points
from stakemap.themes import get_theme


@pytest.fixture
def elements(stakeholders, relationships, layouts):
    return materialize(stakeholders, relationships, layouts)


def _open(png: bytes) -> Image.Image:
    return Image.open(BytesIO(png))


class TestRender:
    def test_renders_png(self, elements):
        png = MapRenderer().render(elements, hulls=company_hulls(elements), title="Accounts")
        img = _open(png)
        assert img.format == "PNG"
        assert img.width > 600 and img.height > 600

    def test_scale_grows_image(self, elements):
        small = _open(MapRenderer(scale=1.0).render(elements))
        large = _open(MapRenderer(scale=2.0).render(elements))
        assert large.width == pytest.approx(small.width * 2, abs=2)

    def test_empty_map(self):
        img = _open(MapRenderer().render(MapElements()))
        assert img.size == (400, 300)

    def test_dark_theme_background(self, elements):
        img = _open(MapRenderer(theme="dark").render(elements, legend=False)).convert("RGB")
        assert img.getpixel((img.width - 1, img.height - 1)) == (0x11, 0x11, 0x1B)

    def test_dimmed_and_selected(self, elements):
        png = MapRenderer().render(
            elements,
            dimmed_nodes={"a3"},
            dimmed_edges={"r3"},
            selected="a1",
        )
        assert png[:4] == b"\x89PNG"

    def test_writes_output_file(self, elements, tmp_path):
        out = tmp_path / "map.png"
        png = MapRenderer().render(elements, output_path=str(out))
        assert out.read_bytes() == png

    def test_unknown_theme(self):
        with pytest.raises(ValueError):
            MapRenderer(theme="neon")
        assert get_theme("light").background == "#ffffff"


class TestShapes:
    @pytest.mark.parametrize("shape, vertices", [
        ("star", 10),
        ("hexagon", 6),
        ("pentagon", 5),
        ("diamond", 4),
        ("triangle", 3),
    ])
    def test_polygon_shapes(self, shape, vertices):
        assert len(shape_points(shape, 0, 0, 40)) == vertices

    def test_round_shapes(self):
        assert shape_points("rounded", 0, 0, 40) is None
        assert shape_points("ellipse", 0, 0, 40) is None
