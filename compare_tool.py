"""
Wrapper around the ImageMagick compare command plus the CSV run report.

The compare command writes a highlighted difference image for two images of
the same size. Its output is captured, and a non-zero exit is returned to the
caller rather than raised.
"""

import csv
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Optional

HIGHLIGHT_COLOR = "blue"

# compare exits 1 when the images differ and 2 on real errors
OK_RETURNCODES = (0, 1)

REPORT_HEADER = [
    "input_a", "input_b", "output", "status",
    "compare_returncode", "time_ms", "errors"
]

@dataclass
class CompareResult:
    returncode: Optional[int]  # None when the command could not be run at all
    output: str = ""
    error: Optional[str] = None

    @property
    def ok(self):
        return self.returncode in OK_RETURNCODES

def build_command(compare_path, in1, in2, outfile):
    # compare_path may hold several words, e.g. "magick compare"
    return shlex.split(compare_path) + [
        str(in1), str(in2),
        "-highlight-color", HIGHLIGHT_COLOR,
        str(outfile)
    ]

def run_compare(compare_path, in1, in2, outfile, timeout=None):
    cmd = build_command(compare_path, in1, in2, outfile)
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        return CompareResult(None, error=f"compare command not found: {cmd[0]}")
    except subprocess.TimeoutExpired:
        return CompareResult(None, error=f"compare timed out after {timeout}s")
    except OSError as e:
        return CompareResult(None, error=f"compare could not be run: {e}")

    out = proc.stdout + proc.stderr
    if proc.returncode not in OK_RETURNCODES:
        return CompareResult(proc.returncode, out, f"compare exited with status {proc.returncode}")
    return CompareResult(proc.returncode, out)

# -------------------------
# Report
# -------------------------
def write_report(results, path):
    """
    Write one CSV row per JobResult as it arrives and pass the result on.
    The file is flushed after every row.
    """
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)
    with open(path, 'w', newline='') as csvfile:
        writer = csv.writer(csvfile)
        writer.writerow(REPORT_HEADER)
        for r in results:
            rc = "" if r.compare_returncode is None else r.compare_returncode
            writer.writerow([
                r.job.input_a, r.job.input_b, r.job.output, r.status,
                rc,
                f"{r.time_ms:.3f}",
                "; ".join(r.errors).replace("\n", "\\n")
            ])
            csvfile.flush()
            yield r
