"""Tests for the SVG scene renderer.

Covers viewport sizing, segment classification, blob boundaries, labels,
layer ordering and rendering of generated plates.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET

import pytest

from flowcal.configs.loader import PrinterProfile
from flowcal.configs.settings import resolve_settings
from flowcal.gcode.generator import generate
from flowcal.preview.svg import (
    ExtentSink,
    PreviewOptions,
    flow_label,
    preview_options_for,
    render,
)
from flowcal.preview.vm import replay

SVG = "{http://www.w3.org/2000/svg}"


def _view_box(svg: str) -> str:
    return re.search(r'viewBox="([^"]+)"', svg).group(1)


def _parse(svg: str) -> ET.Element:
    return ET.fromstring(svg)


# ---------------------------------------------------------------------------
# Viewport
# ---------------------------------------------------------------------------


class TestViewport:
    def test_motion_inside_bed_gives_bed_plus_margins(self) -> None:
        svg = render("G0 X10 Y10\nG1 X100 Y200 E5\n")
        assert _view_box(svg) == "0 0 230 230"

    def test_program_without_motion_uses_bed(self) -> None:
        svg = render("M104 S200\n; nothing else\n", PreviewOptions(bed_width=100, bed_length=50))
        assert _view_box(svg) == "0 0 110 60"

    def test_path_beyond_bed_grows_viewport(self) -> None:
        svg = render("G0 X300 Y0\n")
        assert _view_box(svg) == "0 0 310 230"

    def test_root_element(self) -> None:
        svg = render("")
        assert svg.startswith('<svg xmlns="http://www.w3.org/2000/svg" width="600px" viewBox=')
        assert svg.endswith("</svg>")

    def test_extent_includes_origin_and_resets(self) -> None:
        sink = ExtentSink()
        replay("G92 X-20 Y-10\nG0 X50 Y60\n", sink)
        assert (sink.min_x, sink.min_y, sink.max_x, sink.max_y) == (-20.0, -10.0, 50.0, 60.0)
        assert not sink.empty

    def test_z_only_program_counts_as_no_motion(self) -> None:
        sink = ExtentSink()
        replay("G0 Z10\nG1 E5\n", sink)
        assert sink.empty


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class TestClassification:
    def test_travel_and_extrusion(self) -> None:
        svg = render("G0 X10 Y10\nG1 X20 Y10 E1\n")
        lines = [e for e in _parse(svg).iter(f"{SVG}line") if e.get("stroke-dasharray")]
        assert [e.get("stroke") for e in lines] == ["#F00", "#0b79d0"]
        assert [e.get("stroke-width") for e in lines] == ["0.6", "2"]

    def test_y_axis_is_inverted(self) -> None:
        svg = render("G0 X0 Y100\n")
        line = next(e for e in _parse(svg).iter(f"{SVG}line") if e.get("stroke-dasharray"))
        assert (line.get("y1"), line.get("y2")) == ("105", "5")
        assert (line.get("x1"), line.get("x2")) == ("5", "5")

    def test_negative_coordinates_shift_into_view(self) -> None:
        svg = render("G0 X-10 Y0\n")
        line = next(e for e in _parse(svg).iter(f"{SVG}line") if e.get("stroke-dasharray"))
        assert (line.get("x1"), line.get("x2")) == ("15", "5")


class TestBlobs:
    def test_threshold_is_inclusive(self) -> None:
        svg = render("M83\nG1 E20\n")
        circles = list(_parse(svg).iter(f"{SVG}circle"))
        assert len(circles) == 1
        assert circles[0].get("r") == "0.416"
        assert circles[0].get("fill") == "none"
        assert circles[0].get("stroke") == "#cc3300"

    def test_below_threshold_is_not_a_blob(self) -> None:
        svg = render("M83\nG1 E19.999\n")
        assert list(_parse(svg).iter(f"{SVG}circle")) == []

    def test_xy_drift_at_maximum_is_a_blob(self) -> None:
        svg = render("M83\nG1 X0.1 E25\n")
        assert len(list(_parse(svg).iter(f"{SVG}circle"))) == 1

    def test_xy_drift_beyond_maximum_is_not(self) -> None:
        svg = render("M83\nG1 X0.2 E25\n")
        assert list(_parse(svg).iter(f"{SVG}circle")) == []

    def test_blob_drawn_at_move_start(self) -> None:
        svg = render("G0 X10 Y10\nM83\nG1 Z5 E50\n")
        circle = next(_parse(svg).iter(f"{SVG}circle"))
        assert (circle.get("cx"), circle.get("cy")) == ("15", "5")

    def test_overflowing_volume_gives_zero_radius(self) -> None:
        svg = render("M83\nG1 E1e308\nG1 E1e308\n")
        radii = [c.get("r") for c in _parse(svg).iter(f"{SVG}circle")]
        assert radii == ["0.000"]
        assert "inf" not in svg and "nan" not in svg

    def test_custom_thresholds(self) -> None:
        opts = PreviewOptions(blob_min_e=1.0, blob_max_xy=0.0)
        svg = render("M83\nG1 E1\n", opts)
        assert len(list(_parse(svg).iter(f"{SVG}circle"))) == 1


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------


class TestLabels:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("200°C // 8mm3/s; F19.96mm/min", "F 8 - FR 19.96"),
            ("12.5 mm3/s", "F 12.5"),
            ("F 30 mm/min", "FR 30"),
            ("Hello", None),
        ],
    )
    def test_flow_label(self, message: str, expected) -> None:
        assert flow_label(message) == expected

    def test_label_at_next_move_destination(self) -> None:
        svg = render("M117 200°C // 8mm3/s; F19.96mm/min\nG0 X10 Y10\n")
        text = next(_parse(svg).iter(f"{SVG}text"))
        assert text.text == "F 8 - FR 19.96"
        assert (text.get("x"), text.get("y")) == ("17", "15")
        assert text.get("font-family") == "Arial, sans-serif"

    def test_label_waits_for_xy_motion(self) -> None:
        svg = render("M117 8mm3/s\nG1 Z5\nG0 X10\nG0 X20\n")
        texts = list(_parse(svg).iter(f"{SVG}text"))
        assert len(texts) == 1
        assert texts[0].get("x") == "17"

    def test_message_without_values_sets_no_label(self) -> None:
        svg = render("M117 Heating\nG0 X10\n")
        assert list(_parse(svg).iter(f"{SVG}text")) == []


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------


class TestLayering:
    def test_order(self) -> None:
        svg = render("M83\nM117 8mm3/s\nG1 X10 Y10 E2\nG0 X20 Y20\nG1 Z5 E30\n")
        bed = svg.index('<rect')
        grid = svg.index('stroke="#4b4b53"')
        travel = svg.index('stroke="#F00"')
        extrude = svg.index('stroke="#0b79d0"')
        blob = svg.index('<circle')
        label = svg.index('<text')
        assert bed < grid < travel < extrude < blob < label

    def test_grid_lines(self) -> None:
        svg = render("", PreviewOptions(bed_width=100, bed_length=40, grid_step=20))
        grid = [e for e in _parse(svg).iter(f"{SVG}line") if e.get("stroke") == "#4b4b53"]
        # 6 vertical (0..100) + 3 horizontal (0..40)
        assert len(grid) == 9

    def test_grid_disabled(self) -> None:
        svg = render("", PreviewOptions(grid_step=0))
        assert 'stroke="#4b4b53"' not in svg

    @pytest.mark.parametrize("field", ["bed_width", "bed_length", "grid_step"])
    def test_non_finite_geometry_draws_no_grid(self, field: str) -> None:
        svg = render("", PreviewOptions(**{field: float("inf")}))
        assert 'stroke="#4b4b53"' not in svg
        assert "inf" not in svg

    def test_bed_and_tab(self) -> None:
        rects = list(_parse(render("", PreviewOptions(bed_width=100, bed_length=50))).iter(f"{SVG}rect"))
        assert [(r.get("x"), r.get("y"), r.get("width"), r.get("height")) for r in rects] == [
            ("5", "5", "100", "50"),
            ("5", "55", "50", "2"),
        ]


# ---------------------------------------------------------------------------
# Generated programs
# ---------------------------------------------------------------------------


class TestGeneratedPlates:
    @pytest.fixture()
    def plate(self):
        profile = PrinterProfile(model="Open Bed", width=180.0, depth=180.0, height=180.0)
        raw = {"bedWidth": 180, "bedLength": 180, "bedMargin": 10, "steps": 6, "startFlow": 8}
        return generate(0, raw, [profile])[0], resolve_settings(raw)

    def test_one_blob_and_label_per_site(self, plate) -> None:
        p, settings = plate
        root = _parse(render(p.program, preview_options_for(settings)))
        assert len(list(root.iter(f"{SVG}circle"))) == p.steps
        labels = [t.text for t in root.iter(f"{SVG}text")]
        assert len(labels) == p.steps
        assert labels[0].startswith("F 8 - FR ")

    def test_render_is_deterministic(self, plate) -> None:
        p, _ = plate
        assert render(p.program) == render(p.program)

    def test_preview_options_for(self) -> None:
        s = resolve_settings({"bedWidth": 256, "bedLength": 250, "bedMarginX": 10,
                              "bedMarginY": 15, "filamentDiameter": 2.85})
        opts = preview_options_for(s, grid_step=10)
        assert (opts.bed_width, opts.bed_length, opts.margin) == (256.0, 250.0, 15.0)
        assert opts.filament_diameter == 2.85
        assert opts.grid_step == 10
