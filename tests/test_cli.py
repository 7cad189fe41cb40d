import numpy as np
import pytest
from PIL import Image

import engraver_fill.__main__ as cli
from engraver_fill import FillData, NormalizationWarning, ValidationError, parse_fill_data
from engraver_fill.config import EngineConfig, get_engine_config, set_engine_config
from engraver_fill.settings import FieldKind
from engraver_fill.trace import ImageSource


def test_new_fill_is_written_to_output(tmp_path):
    output_path = tmp_path / "out" / "fill.txt"

    cli.main([str(tmp_path / "unused.txt"), "--new", "--spacing", "0.1", "--seed", "5", "--output", str(output_path)])

    data = parse_fill_data(output_path.read_text(encoding="utf-8"))
    group = data.groups[0]
    assert group.name == "Default"
    assert 9 <= len(group.lines) <= 11
    assert group.dashes.random_seed == 5
    assert group.direction.seed == 5


def test_fill_with_type_prints_to_stdout(tmp_path, capsys):
    program_path = tmp_path / "fill.txt"
    program_path.write_text("group\n  name Etch\n  spacing\n    spacing 0.1\n", encoding="utf-8")

    cli.main([str(program_path), "--fill", "--type", "radial"])

    data = parse_fill_data(capsys.readouterr().out)
    group = data.groups[0]
    assert group.name == "Etch"
    assert group.direction.kind is FieldKind.RADIAL
    assert len(group.lines) == int(2 * np.pi / 0.2)


def test_syntax_error_exits_with_status_one(tmp_path, caplog):
    program_path = tmp_path / "broken.txt"
    program_path.write_text("group\n  position (1 2)\n", encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        cli.main([str(program_path)])

    assert exc.value.code == 1
    assert "expected COMMA" in caplog.text


def test_non_positive_spacing_is_rejected(tmp_path):
    with pytest.raises(SystemExit) as exc:
        cli.main([str(tmp_path / "unused.txt"), "--new", "--spacing", "0"])

    assert exc.value.code == 1


def test_trace_image_sets_weights(tmp_path):
    ramp = np.tile(np.linspace(0, 255, 20).astype(np.uint8), (20, 1))
    image_path = tmp_path / "ramp.png"
    Image.fromarray(ramp).save(image_path)
    output_path = tmp_path / "traced.txt"

    cli.main([str(tmp_path / "unused.txt"), "--new", "--spacing", "0.1", "--trace-image", str(image_path), "--output", str(output_path)])

    group = parse_fill_data(output_path.read_text(encoding="utf-8")).groups[0]
    assert isinstance(group.trace_settings.source, ImageSource)
    weights = [p.weight for p in group.lines[len(group.lines) // 2]]
    assert weights[0] > weights[-1]


def test_repairs_are_reported(tmp_path, monkeypatch, caplog, capsys):
    program_path = tmp_path / "fill.txt"
    program_path.write_text("ignored", encoding="utf-8")

    data = FillData()
    data.add_group(name="Loaded").spacing.spacing = 0.1
    warning = NormalizationWarning(1, "spacing", "group 'Loaded': spacing -1 replaced by 0.05")
    monkeypatch.setattr(cli, "load_fill_data", lambda text: (data, [warning]))

    with caplog.at_level("INFO"):
        cli.main([str(program_path)])

    assert "Repaired 1 setting(s) while loading" in caplog.text
    assert 'name "Loaded"' in capsys.readouterr().out


def test_validation_error_exits_with_status_one(tmp_path, monkeypatch, caplog):
    program_path = tmp_path / "fill.txt"
    program_path.write_text("ignored", encoding="utf-8")

    def reject(text):
        raise ValidationError("duplicate group id 3")

    monkeypatch.setattr(cli, "load_fill_data", reject)

    with pytest.raises(SystemExit) as exc:
        cli.main([str(program_path)])

    assert exc.value.code == 1
    assert "duplicate group id 3" in caplog.text


def test_nan_weight_file_loads(tmp_path, capsys):
    program_path = tmp_path / "fill.txt"
    program_path.write_text(
        "group\n  name N\n  spacing\n    spacing 0.1\n  line \\\n    (0, 0.5) nan\n    (1, 0.5) 0.01\n",
        encoding="utf-8",
    )

    cli.main([str(program_path)])

    group = parse_fill_data(capsys.readouterr().out).groups[0]
    assert [p.weight for p in group.lines[0]] == [0.0, 0.01]


def test_incomplete_growth_is_flagged_in_the_summary(tmp_path, caplog):
    saved = get_engine_config()
    try:
        set_engine_config(EngineConfig(iteration_limit=4))
        with caplog.at_level("INFO"):
            cli.main([str(tmp_path / "unused.txt"), "--new", "--grow", "--spacing", "0.1", "--output", str(tmp_path / "out.txt")])
    finally:
        set_engine_config(saved)

    assert "growth incomplete" in caplog.text
