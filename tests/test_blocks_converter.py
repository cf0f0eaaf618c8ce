from __future__ import annotations

import json

from test_region_format import anvil_chunk_nbt, write_anvil_world

from block_registry import state_id
from blocks_converter import main
from region_format import REGION_CODECS, RegionProvider

RICH_LINE = '{"text":"","extra":[{"color":"gold","text":"Shop"}]}'


def make_world(tmp_path):
    return write_anvil_world(
        tmp_path / "survival",
        {
            (0, 0): anvil_chunk_nbt(0, 0, {(1, 2, 3): (3, 0)}),
            (33, -1): anvil_chunk_nbt(
                33, -1, {(0, 0, 0): (63, 4)}, [RICH_LINE, "plain", "", ""]
            ),
        },
    )


def test_convert_backs_up_and_rewrites_world(tmp_path, capsys):
    world = make_world(tmp_path)
    backups = tmp_path / "backups"

    assert main(["convert", str(world), "--backups-dir", str(backups)]) == 0

    out = capsys.readouterr().out
    assert 'Creating a backup of "survival"' in out
    assert (backups / "survival" / "region" / "r.0.0.mca").is_file()

    provider = RegionProvider(world, REGION_CODECS["anvil"])
    assert provider.load_chunk(0, 0).get_block_state_id(1, 2, 3) == state_id(243)
    sign = provider.load_chunk(33, -1).tiles[0]
    assert sign.get_text() == ["§6Shop", "plain", "", ""]

    backup_provider = RegionProvider(backups / "survival", REGION_CODECS["anvil"])
    assert backup_provider.load_chunk(0, 0).get_block_state_id(1, 2, 3) == state_id(3)


def test_convert_to_java_then_restore(tmp_path):
    world = make_world(tmp_path)
    backups = tmp_path / "backups"
    assert main(["convert", str(world), "--backups-dir", str(backups)]) == 0
    assert main(["convert", str(world), "--to", "java", "--no-backup", "--force",
                 "--backups-dir", str(backups)]) == 0

    provider = RegionProvider(world, REGION_CODECS["anvil"])
    assert provider.load_chunk(0, 0).get_block_state_id(1, 2, 3) == state_id(3)

    assert main(["restore", str(world), "--backups-dir", str(backups)]) == 0


def test_convert_without_backup_still_runs(tmp_path, capsys, caplog):
    world = make_world(tmp_path)
    code = main(["convert", str(world), "--no-backup", "--backups-dir", str(tmp_path / "none")])

    assert code == 0
    assert 'No backup will be created for the world "survival"' in capsys.readouterr().out
    assert "will be converted without a backup" in caplog.text
    assert not (tmp_path / "none").exists()

    provider = RegionProvider(world, REGION_CODECS["anvil"])
    assert provider.load_chunk(0, 0).get_block_state_id(1, 2, 3) == state_id(243)


def test_convert_rejects_missing_world(tmp_path, capsys):
    assert main(["convert", str(tmp_path / "nowhere")]) == 2
    assert "can't be converted" in capsys.readouterr().out


def test_convert_applies_extra_rule_files(tmp_path):
    world = make_world(tmp_path)
    rules = tmp_path / "rules.json"
    rules.write_text(json.dumps([{"source": "dirt", "target": "grass"}]), encoding="utf-8")

    code = main(["convert", str(world), "--mapping", str(rules),
                 "--backups-dir", str(tmp_path / "backups")])

    assert code == 0
    provider = RegionProvider(world, REGION_CODECS["anvil"])
    assert provider.load_chunk(0, 0).get_block_state_id(1, 2, 3) == state_id(2)


def test_inspect_prints_block(tmp_path, capsys):
    world = make_world(tmp_path)
    assert main(["inspect", str(world), "1", "2", "3"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out == ["dirt (ID: 3 Meta: 0)", "X: 1 Y: 2 Z: 3"]


def test_inspect_reports_missing_chunk_and_bad_y(tmp_path, capsys):
    world = make_world(tmp_path)
    assert main(["inspect", str(world), "500", "2", "3"]) == 1
    assert main(["inspect", str(world), "1", "300", "3"]) == 2
    out = capsys.readouterr().out
    assert "No chunk stored" in out
    assert "Y must be between 0 and 255." in out
