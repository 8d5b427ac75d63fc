import csv
from pathlib import Path

from compare_tool import REPORT_HEADER, build_command, run_compare, write_report
from conftest import GREEN, RED, make_png
from dirdiff import DiffJob, JobResult


def test_build_command():
    cmd = build_command("compare", "a.png", "b.png", "out.png")
    assert cmd == ["compare", "a.png", "b.png", "-highlight-color", "blue", "out.png"]


def test_build_command_splits_multiword_commands():
    cmd = build_command("magick compare", Path("a b.png"), "b.png", "out.png")
    assert cmd[:3] == ["magick", "compare", "a b.png"]


def test_run_compare_writes_diff(tmp_path, fake_compare):
    a = make_png(tmp_path / "a.png", (8, 8), RED)
    b = make_png(tmp_path / "b.png", (8, 8), GREEN)
    out = tmp_path / "out.png"
    res = run_compare(fake_compare, a, b, out)
    # exit status 1 only means the images differ
    assert res.returncode == 1
    assert res.ok
    assert res.error is None
    assert out.exists()


def test_run_compare_reports_failure(tmp_path, broken_compare):
    a = make_png(tmp_path / "a.png", (8, 8), RED)
    res = run_compare(broken_compare, a, a, tmp_path / "out.png")
    assert res.returncode == 2
    assert not res.ok
    assert "status 2" in res.error
    assert "delegate library" in res.output


def test_run_compare_missing_command(tmp_path):
    res = run_compare(str(tmp_path / "no-such-compare"), "a.png", "b.png", tmp_path / "out.png")
    assert res.returncode is None
    assert not res.ok
    assert "not found" in res.error


def test_run_compare_timeout(tmp_path, slow_compare):
    res = run_compare(slow_compare, "a.png", "b.png", tmp_path / "out.png", timeout=0.5)
    assert res.returncode is None
    assert "timed out" in res.error


def test_write_report(tmp_path):
    job = DiffJob(Path("d1/a.png"), Path("d2/a.png"), Path("out/a.png"))
    results = [
        JobResult(job, "ok", [], 1, 12.5),
        JobResult(job, "degraded", ["compare command not found: compare", "could not decode x"], None, 3.0),
    ]
    path = tmp_path / "results" / "report.csv"

    passed = list(write_report(results, str(path)))

    assert passed == results
    with open(path, newline="") as f:
        rows = list(csv.reader(f))
    assert rows[0] == REPORT_HEADER
    assert rows[1] == [str(Path("d1/a.png")), str(Path("d2/a.png")), str(Path("out/a.png")), "ok", "1", "12.500", ""]
    assert rows[2][3] == "degraded"
    assert rows[2][4] == ""
    assert rows[2][6] == "compare command not found: compare; could not decode x"
