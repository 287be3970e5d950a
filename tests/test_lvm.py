import json
import subprocess
from unittest import mock

import pytest

from lvmlocal import lvm
from lvmlocal.lvm import (
    ExecError,
    LVMSnapshot,
    LVMVolume,
    VolumeGroup,
    build_create_args,
    build_destroy_args,
    build_resize_args,
    build_snapshot_create_args,
    build_snapshot_destroy_args,
    create_snapshot,
    create_volume,
    decode_vgs_json,
    destroy_snapshot,
    destroy_volume,
    list_volume_groups,
    lvm_snapshot_name,
    parse_volume_group,
    reload_metadata_cache,
    resize_volume,
    snapshot_exists,
    thin_pool_exists,
    thin_pool_size,
    vg_free_size,
    volume_dev_path,
    volume_exists,
)


class FakeRun:
    """Records commands and answers them from a queue of (returncode, output)."""

    def __init__(self, *answers):
        self.answers = list(answers) or [(0, b"")]
        self.calls = []

    def __call__(self, cmd, *args, **kwargs):
        self.calls.append(list(cmd))
        code, out = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        return subprocess.CompletedProcess(cmd, code, stdout=out)


def thick_volume(**kw):
    return LVMVolume(name="pvc-1", vol_group="lvmvg", capacity="1024", **kw)


def test_create_args_thick():
    assert build_create_args(thick_volume(), False, "") == [
        "-L", "1024b", "-n", "pvc-1", "lvmvg",
    ]


def test_create_args_thick_without_capacity():
    vol = LVMVolume(name="pvc-1", vol_group="lvmvg")
    assert build_create_args(vol, False, "") == ["-n", "pvc-1", "lvmvg"]


def test_create_args_thin_new_pool():
    vol = thick_volume(thin_provision="yes")
    assert build_create_args(vol, False, "512b") == [
        "-L", "512b", "-T", "lvmvg/lvmvg_thinpool", "-V", "1024b", "-n", "pvc-1",
    ]


def test_create_args_thin_existing_pool_and_whitespace():
    vol = thick_volume(thin_provision="  yes ")
    assert build_create_args(vol, True, "512b") == [
        "-T", "lvmvg/lvmvg_thinpool", "-V", "1024b", "-n", "pvc-1",
    ]


def test_destroy_and_resize_args():
    vol = thick_volume()
    assert build_destroy_args(vol) == ["-y", "/dev/lvmvg/pvc-1"]
    assert build_resize_args(vol, False) == ["/dev/lvmvg/pvc-1", "-L", "1024b"]
    assert build_resize_args(vol, True) == ["/dev/lvmvg/pvc-1", "-L", "1024b", "-r"]


def test_snapshot_name_prefix():
    assert lvm_snapshot_name("snapshot-abc") == "abc"
    assert lvm_snapshot_name("mysnap") == "mysnap"


def test_snapshot_args():
    snap = LVMSnapshot(
        name="snapshot-s1",
        vol_group="lvmvg",
        capacity="2048",
        labels={lvm.LVM_VOL_KEY: "pvc-1"},
    )
    assert build_snapshot_create_args(snap) == [
        "--snapshot", "--name", "s1", "--size", "2048b",
        "--permission", "r", "/dev/lvmvg/pvc-1",
    ]
    assert build_snapshot_destroy_args(snap) == ["-y", "/dev/lvmvg/s1"]


def test_dev_path_doubles_hyphens():
    vol = LVMVolume(name="pvc-1", vol_group="my-vg")
    assert volume_dev_path(vol) == "/dev/mapper/my--vg-pvc--1"


def test_volume_exists(tmp_path, monkeypatch):
    monkeypatch.setattr(lvm, "DEV_MAPPER_PATH", str(tmp_path) + "/")
    vol = LVMVolume(name="pvc", vol_group="vg")
    assert volume_exists(vol) is False
    (tmp_path / "vg-pvc").touch()
    assert volume_exists(vol) is True


def test_snapshot_exists(tmp_path, monkeypatch):
    monkeypatch.setattr(lvm, "DEV_PATH", str(tmp_path) + "/")
    (tmp_path / "vg").mkdir()
    assert snapshot_exists("vg/s1") is False
    (tmp_path / "vg" / "s1").touch()
    assert snapshot_exists("vg/s1") is True


def test_decode_vgs_json():
    raw = json.dumps({
        "report": [{
            "vg": [{
                "vg_name": "lvmvg",
                "vg_uuid": "uuid-1",
                "pv_count": "1",
                "lv_count": "3",
                "vg_size": "10737418240B",
                "vg_free": "5368709120B",
            }]
        }]
    })
    assert decode_vgs_json(raw) == [
        VolumeGroup("lvmvg", "uuid-1", 1, 3, 10737418240, 5368709120)
    ]


def test_decode_vgs_json_empty_group_list():
    assert decode_vgs_json(b'{"report": [{}]}') == []


@pytest.mark.parametrize("raw", ['{"report": []}', '{"report": [{}, {}]}', "{}", "not json"])
def test_decode_vgs_json_errors(raw):
    with pytest.raises(ValueError):
        decode_vgs_json(raw)


def test_parse_volume_group_malformed_values_are_zero():
    vg = parse_volume_group({"vg_name": "x", "pv_count": "abc", "vg_size": "12kb"})
    assert (vg.name, vg.pv_count, vg.lv_count, vg.size, vg.free) == ("x", 0, 0, 0, 0)


def test_thin_pool_size():
    free = 1073741824
    assert thin_pool_size(str(free), "2147483648") == f"{free - lvm.MIN_EXTENT_ROUND_OFF_SIZE}b"
    assert thin_pool_size("2147483648", "1024") == "1024b"
    assert thin_pool_size("", "1024") == ""
    assert thin_pool_size("100", "big") == ""


def test_exec_error_message():
    err = ExecError(b"boom", "exit status 5")
    assert str(err) == "boom - exit status 5"
    assert err.output == b"boom"


def test_create_volume_runs_lvcreate(tmp_path, monkeypatch):
    monkeypatch.setattr(lvm, "DEV_MAPPER_PATH", str(tmp_path) + "/")
    fake = FakeRun()
    with mock.patch.object(lvm.subprocess, "run", fake):
        result = create_volume(thick_volume())
    assert result is None
    assert fake.calls == [["lvcreate", "-L", "1024b", "-n", "pvc-1", "lvmvg"]]


def test_create_thin_volume_queries_pool(tmp_path, monkeypatch):
    monkeypatch.setattr(lvm, "DEV_MAPPER_PATH", str(tmp_path) + "/")
    fake = FakeRun((0, b"\n"), (0, b"  4096\n"), (0, b""))
    with mock.patch.object(lvm.subprocess, "run", fake):
        result = create_volume(thick_volume(thin_provision="yes"))
    assert result is None
    assert fake.calls[0][0] == "lvs"
    assert fake.calls[1][:2] == ["vgs", "lvmvg"]
    assert fake.calls[2] == [
        "lvcreate", "-L", "1024b", "-T", "lvmvg/lvmvg_thinpool", "-V", "1024b", "-n", "pvc-1",
    ]


def test_create_volume_skips_existing(tmp_path, monkeypatch):
    monkeypatch.setattr(lvm, "DEV_MAPPER_PATH", str(tmp_path) + "/")
    (tmp_path / "lvmvg-pvc--1").touch()
    fake = FakeRun()
    with mock.patch.object(lvm.subprocess, "run", fake):
        result = create_volume(thick_volume())
    assert result is None
    assert fake.calls == []


def test_create_volume_failure_raises(tmp_path, monkeypatch):
    monkeypatch.setattr(lvm, "DEV_MAPPER_PATH", str(tmp_path) + "/")
    fake = FakeRun((5, b"boom"))
    with mock.patch.object(lvm.subprocess, "run", fake):
        with pytest.raises(ExecError) as info:
            create_volume(thick_volume())
    assert info.value.output == b"boom"
    assert str(info.value).startswith("boom - ")


def test_destroy_volume(tmp_path, monkeypatch):
    monkeypatch.setattr(lvm, "DEV_MAPPER_PATH", str(tmp_path) + "/")
    fake = FakeRun()
    with mock.patch.object(lvm.subprocess, "run", fake):
        assert destroy_volume(LVMVolume(name="pvc-1")) is None
        assert destroy_volume(thick_volume()) is None
        assert fake.calls == []
        (tmp_path / "lvmvg-pvc--1").touch()
        assert destroy_volume(thick_volume()) is None
    assert fake.calls == [["lvremove", "-y", "/dev/lvmvg/pvc-1"]]


def test_resize_volume_failure():
    fake = FakeRun((1, b"no space"))
    with mock.patch.object(lvm.subprocess, "run", fake):
        with pytest.raises(ExecError):
            resize_volume(thick_volume(), True)
    assert fake.calls == [["lvextend", "/dev/lvmvg/pvc-1", "-L", "1024b", "-r"]]


def test_snapshot_create_and_destroy(tmp_path, monkeypatch):
    monkeypatch.setattr(lvm, "DEV_PATH", str(tmp_path) + "/")
    (tmp_path / "lvmvg").mkdir()
    snap = LVMSnapshot(name="snapshot-s1", vol_group="lvmvg", capacity="10",
                       labels={lvm.LVM_VOL_KEY: "pvc-1"})
    fake = FakeRun()
    with mock.patch.object(lvm.subprocess, "run", fake):
        assert destroy_snapshot(snap) is None
        assert fake.calls == []
        assert create_snapshot(snap) is None
        (tmp_path / "lvmvg" / "s1").touch()
        assert destroy_snapshot(snap) is None
    assert fake.calls[0][0] == "lvcreate"
    assert fake.calls[1] == ["lvremove", "-y", str(tmp_path) + "/lvmvg/s1"]


def test_thin_pool_exists():
    with mock.patch.object(lvm.subprocess, "run", FakeRun((0, b"  lvmvg_thinpool\n"))):
        assert thin_pool_exists("lvmvg", "lvmvg_thinpool") is True
    with mock.patch.object(lvm.subprocess, "run", FakeRun((0, b"other\n"))):
        assert thin_pool_exists("lvmvg", "lvmvg_thinpool") is False
    with mock.patch.object(lvm.subprocess, "run", FakeRun((5, b"error"))):
        assert thin_pool_exists("lvmvg", "lvmvg_thinpool") is False


def test_vg_free_size():
    with mock.patch.object(lvm.subprocess, "run", FakeRun((0, b"  4096 \n"))):
        assert vg_free_size("lvmvg") == "4096"
    with mock.patch.object(lvm.subprocess, "run", FakeRun((5, b"error"))):
        assert vg_free_size("lvmvg") == ""


def test_missing_command_raises_exec_error():
    with mock.patch.object(lvm.subprocess, "run", side_effect=FileNotFoundError("pvscan")):
        with pytest.raises(ExecError):
            reload_metadata_cache()


def test_list_volume_groups():
    report = json.dumps({"report": [{"vg": [{"vg_name": "vg1", "vg_free": "100B"}]}]})
    fake = FakeRun((0, b""), (0, report.encode()))
    with mock.patch.object(lvm.subprocess, "run", fake):
        groups = list_volume_groups()
    assert [(g.name, g.free) for g in groups] == [("vg1", 100)]
    assert fake.calls[0] == ["pvscan", "--cache"]
    assert fake.calls[1] == [
        "vgs", "--options", "vg_all", "--reportformat", "json", "--units", "b",
    ]