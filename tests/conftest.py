"""
Shared fixtures: PNG factories and stand-ins for the ImageMagick compare command.
"""
import shlex
import sys

import pytest
from PIL import Image

RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)

# Behaves like compare: paints the whole diff blue and exits 1 (images differ),
# exits 2 without writing anything when the inputs are unreadable or differ in size.
FAKE_COMPARE = """
import sys
from PIL import Image

a, b, out = sys.argv[1], sys.argv[2], sys.argv[-1]
try:
    with Image.open(a) as ia, Image.open(b) as ib:
        size_a, size_b = ia.size, ib.size
except Exception as e:
    print("compare: unable to open image", e, file=sys.stderr)
    sys.exit(2)
if size_a != size_b:
    print("compare: image widths or heights differ", file=sys.stderr)
    sys.exit(2)
Image.new("RGBA", size_a, (0, 0, 255, 255)).save(out, format="PNG")
sys.exit(1)
"""

BROKEN_COMPARE = """
import sys
print("compare: delegate library support not built-in", file=sys.stderr)
sys.exit(2)
"""

SLOW_COMPARE = """
import time
time.sleep(10)
"""


def make_png(path, size, color=RED):
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGBA", size, color).save(path)
    return path


def _script(tmp_path, name, source):
    script = tmp_path / "bin" / name
    script.parent.mkdir(parents=True, exist_ok=True)
    script.write_text(source)
    return shlex.join([sys.executable, str(script)])


@pytest.fixture
def fake_compare(tmp_path):
    return _script(tmp_path, "fake_compare.py", FAKE_COMPARE)


@pytest.fixture
def broken_compare(tmp_path):
    return _script(tmp_path, "broken_compare.py", BROKEN_COMPARE)


@pytest.fixture
def slow_compare(tmp_path):
    return _script(tmp_path, "slow_compare.py", SLOW_COMPARE)


@pytest.fixture
def dirs(tmp_path):
    d1, d2, out = tmp_path / "before", tmp_path / "after", tmp_path / "diff"
    d1.mkdir()
    d2.mkdir()
    out.mkdir()
    return d1, d2, out
