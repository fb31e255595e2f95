"""Tests for the calibration plate generator.

Covers plate partitioning, the no-sites plate, per-site program blocks,
temperature blocks, header/footer content and decimal-safe output.
"""

from __future__ import annotations

import math
import re

import pytest

from flowcal.calibration.sweep import feed_rate
from flowcal.configs.loader import ExcludedArea, PrinterProfile
from flowcal.configs.settings import resolve_settings
from flowcal.gcode.generator import (
    NO_SITES_COMMENT,
    Plate,
    PlateGenerator,
    archive_name,
    generate,
)
from flowcal.utils.numbers import format_number


SCENARIO = {
    "bedWidth": 180,
    "bedLength": 180,
    "bedMarginX": 10,
    "bedMarginY": 10,
    "startFlow": 8,
    "offset": 2,
    "steps": 20,
    "xSpacing": 20,
    "ySpacing": 20,
    "primeLength": 25,
    "wipeLength": 15,
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def open_bed() -> list[PrinterProfile]:
    return [PrinterProfile(model="Open Bed", width=180.0, depth=180.0, height=180.0)]


@pytest.fixture()
def blocked_bed() -> list[PrinterProfile]:
    everything = ExcludedArea(x=-1000.0, y=-1000.0, width=5000.0, depth=5000.0)
    return [
        PrinterProfile(
            model="Blocked", width=180.0, depth=180.0, height=180.0,
            excluded_areas=(everything,),
        )
    ]


def _site_flows(program: str) -> list[str]:
    return re.findall(r"^;####### (\S+)mm3/s$", program, flags=re.MULTILINE)


def _site_moves(program: str) -> list[tuple[str, str]]:
    """(X, Y) of each site's approach move."""
    return re.findall(r"^G0 X(\S+) Y(\S+) Z\S+ F\S+$", program, flags=re.MULTILINE)


# ---------------------------------------------------------------------------
# Plate partitioning
# ---------------------------------------------------------------------------


class TestPartitioning:
    def test_scenario_plate_count(self, open_bed) -> None:
        gen = PlateGenerator(resolve_settings(SCENARIO), open_bed[0])
        assert gen.sites_per_plate == 16
        plates = gen.generate()
        assert len(plates) == math.ceil(20 / gen.sites_per_plate) == 2
        assert [p.index for p in plates] == [1, 2]
        assert [p.steps for p in plates] == [16, 4]

    def test_scenario_first_flow(self, open_bed) -> None:
        plates = generate(0, SCENARIO, open_bed)
        assert _site_flows(plates[0].program)[0] == "8"

    def test_fill_mode_flows_across_plates(self, open_bed) -> None:
        plates = generate(0, SCENARIO, open_bed)
        flows = [f for p in plates for f in _site_flows(p.program)]
        assert flows == [format_number(8 + 2 * k) for k in range(20)]

    @pytest.mark.parametrize("steps", [0, 1, 15, 16, 17, 33, 64])
    def test_steps_sum(self, open_bed, steps: int) -> None:
        raw = dict(SCENARIO, steps=steps)
        plates = generate(0, raw, open_bed)
        assert len(plates) >= 1
        assert sum(p.steps for p in plates) == steps
        assert len(plates) == max(1, math.ceil(steps / 16))

    def test_sites_follow_candidate_order(self, open_bed) -> None:
        plates = generate(0, SCENARIO, open_bed)
        moves = _site_moves(plates[0].program)
        assert moves[0] == ("10", "170")
        assert moves[7] == ("10", "30")
        assert moves[8] == ("70", "170")
        assert _site_moves(plates[1].program)[0] == ("10", "170")

    def test_deterministic(self, open_bed) -> None:
        first = generate(0, SCENARIO, open_bed)
        second = generate(0, SCENARIO, open_bed)
        assert [p.program for p in first] == [p.program for p in second]


class TestNoSites:
    def test_single_empty_plate(self, blocked_bed) -> None:
        plates = generate(0, SCENARIO, blocked_bed)
        assert len(plates) == 1
        assert plates[0] == Plate(index=1, program=plates[0].program, steps=0)
        assert NO_SITES_COMMENT in plates[0].program

    def test_no_sweep_attempted(self, blocked_bed) -> None:
        program = generate(0, SCENARIO, blocked_bed)[0].program
        assert "M117" not in program
        assert "M109" not in program
        assert "M104 S200" in program


class TestExcludedSites:
    def test_excluded_cell_never_visited(self) -> None:
        area = ExcludedArea(x=0.0, y=140.0, width=20.0, depth=20.0)
        profile = PrinterProfile(
            model="Probe", width=180.0, depth=180.0, height=180.0, excluded_areas=(area,)
        )
        plates = generate(0, SCENARIO, [profile])
        moves = [m for p in plates for m in _site_moves(p.program)]
        assert ("10", "150") not in moves
        assert sum(p.steps for p in plates) == 20
        assert len(plates) == 2


# ---------------------------------------------------------------------------
# Temperature blocks
# ---------------------------------------------------------------------------


class TestTemperatureBlocks:
    def test_single_column_block_only_on_first_plate(self, open_bed) -> None:
        first, second = generate(0, SCENARIO, open_bed)
        assert first.program.count("M109 R200") == 1
        assert first.program.count(";####### 200C") == 1
        assert "M109" not in second.program
        assert ";####### 200C" not in second.program

    def test_plate_starting_mid_column(self, open_bed) -> None:
        # 40 points over 16-site plates: plate 2 opens on column 1 row 17,
        # column 2 starts at its fifth slot; plate 3 opens on column 2 row 13
        raw = dict(SCENARIO, tempSteps=2, startTemp=200, tempOffset=5)
        plates = generate(0, raw, open_bed)
        assert [p.steps for p in plates] == [16, 16, 8]
        blocks = [re.findall(r"^M109 R(\S+)$", p.program, flags=re.MULTILINE) for p in plates]
        assert blocks == [["200"], ["205"], []]
        second = plates[1].program
        assert second.index("M109 R205") > second.index("M117")
        assert second.split("M109 R205")[0].count("M117") == 4

    def test_block_precedes_first_site(self, open_bed) -> None:
        program = generate(0, SCENARIO, open_bed)[0].program
        assert program.index("M109 R200") < program.index("M117")

    def test_one_block_per_column(self, open_bed) -> None:
        raw = dict(SCENARIO, steps=4, tempSteps=3, startTemp=200, tempOffset=5)
        program = generate(0, raw, open_bed)[0].program
        assert re.findall(r"^M109 R(\S+)$", program, flags=re.MULTILINE) == ["200", "205", "210"]
        # Matrix mode: flow restarts with each column
        assert _site_flows(program) == ["8", "10", "12", "14"] * 3


# ---------------------------------------------------------------------------
# Program text
# ---------------------------------------------------------------------------


class TestProgramText:
    @pytest.fixture()
    def program(self, open_bed) -> str:
        return generate(0, SCENARIO, open_bed)[0].program

    def test_header(self, program: str) -> None:
        lines = program.splitlines()
        assert lines[1] == "; Profile: Open Bed"
        assert lines[2] == "; Plate 1 of 2"
        assert "; bed_width = 180" in lines
        assert "; bed_margin_x = 10" in lines
        assert "; end_flow = unset" in lines
        assert "; sweep_mode = auto" in lines

    def test_boilerplate(self, program: str) -> None:
        for line in ("G90", "G28 ; Home all axes", "G21 ; Units in mm", "M83 ; Relative extrusion",
                     "M190 S60 ; Wait for bed", "M106 S0 ; Fan"):
            assert line in program.splitlines()

    def test_fan_pwm(self, open_bed) -> None:
        program = generate(0, dict(SCENARIO, fanSpeed=50), open_bed)[0].program
        assert "M106 S128 ; Fan" in program.splitlines()

    def test_first_site_block(self, program: str) -> None:
        s = resolve_settings(SCENARIO)
        feed = format_number(feed_rate(s, 8))
        lines = program.splitlines()
        start = lines.index(";####### 8mm3/s")
        assert lines[start:start + 16] == [
            ";####### 8mm3/s",
            f"M117 200°C // 8mm3/s; F{feed}mm/min",
            "G0 X10 Y170 Z10.5 F3600",
            "G4 S3 ; Stabilize",
            "G0 Z0.3",
            "G1 X35 E3 F300 ; Prime",
            "G1 E-1 F1800 ; Retract",
            "G0 X50 F3600 ; Wipe",
            "G0 Z0.5",
            "G1 E1 F1800 ; De-Retract",
            f"G1 Z5.5 E50 F{feed} ; Extrude F{feed}mm/min",
            "G1 E-1 F1800 ; Retract",
            "G0 Z10.5 ; Lift",
            "G0 X10 Y170 F3600",
            "G92 E0",
            "",
        ]

    def test_footer(self, program: str) -> None:
        lines = program.splitlines()
        assert lines[-5:] == [
            ";####### End G-Code",
            "G0 X170 Y170",
            "M104 S0 T0",
            "M140 S0",
            "M84",
        ]

    def test_decimal_point_only(self, open_bed) -> None:
        raw = dict(SCENARIO, startFlow="0.1", offset="0.2", filamentDiameter="2.85")
        for plate in generate(0, raw, open_bed):
            assert "," not in plate.program
            assert not re.search(r"\bnan\b|\binf\b", plate.program, flags=re.IGNORECASE)

    def test_float_noise_is_rounded(self, open_bed) -> None:
        raw = dict(SCENARIO, startFlow=0.1, offset=0.2, steps=2)
        flows = _site_flows(generate(0, raw, open_bed)[0].program)
        assert flows == ["0.1", "0.3"]

    def test_garbage_settings_never_raise(self, open_bed) -> None:
        raw = {key: "garbage" for key in SCENARIO}
        plates = generate(0, raw, open_bed)
        assert sum(p.steps for p in plates) == 20


# ---------------------------------------------------------------------------
# Profiles / naming
# ---------------------------------------------------------------------------


class TestProfileSelection:
    def test_unreachable_index_uses_placeholder(self) -> None:
        plates = generate(7, SCENARIO, [])
        assert "; Profile: undefined" in plates[0].program
        assert sum(p.steps for p in plates) == 20

    def test_shipped_catalog(self) -> None:
        plates = generate(2, {"steps": 3})
        assert "; Profile: X1/P1" in plates[0].program
        assert plates[0].steps == 3


class TestNaming:
    def test_plate_filename(self) -> None:
        plate = Plate(index=2, program="", steps=0)
        assert plate.filename("X1/P1") == "flow-test-X1-P1-plate-2.gcode"
        assert plate.filename("A1 Mini") == "flow-test-A1-Mini-plate-2.gcode"

    def test_archive_name(self) -> None:
        assert archive_name("H2D") == "flow-test-H2D.zip"
