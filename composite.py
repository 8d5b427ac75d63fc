"""
Image helpers for dirdiff: PNG load/save, padding to a common size and
side-by-side compositing.

Images are handled as numpy RGBA buffers of shape (height, width, 4).

Usage:
  python composite.py a.png diff.png b.png out.png
"""

import os
import sys
import numpy as np
from PIL import Image

# Pillow reports broken PNG chunks as SyntaxError
DECODE_ERRORS = (OSError, SyntaxError, ValueError)

# empty region used when an image could not be decoded
EMPTY = np.zeros((0, 0, 4), dtype=np.uint8)
EMPTY.flags.writeable = False

# -------------------------
# Codec
# -------------------------
def load_png(path):
    # raises one of DECODE_ERRORS on failure
    with Image.open(path) as img:
        return np.array(img.convert('RGBA'))

def save_png(buf, path):
    img = Image.fromarray(buf)
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)
    # format is explicit so temporary names need not end in .png
    img.save(path, format='PNG')

# -------------------------
# Padding
# -------------------------
def pad_to(buf, height, width):
    """
    Draw buf at the origin of a zeroed canvas of the given size.
    The canvas is never smaller than buf, so nothing is cropped.
    """
    h, w = buf.shape[:2]
    canvas = np.zeros((max(h, height), max(w, width), 4), dtype=np.uint8)
    canvas[0:h, 0:w, :] = buf[:, :, :4]
    return canvas

def common_size_image_lengths(in1, in2, out):
    """
    Compare the heights of two images and pad the shorter one, writing it to out.

    Returns (path1, path2, created) where the paths point at images of equal
    height and created tells whether out was written.
    """
    img1 = load_png(in1)
    img2 = load_png(in2)
    h1, w1 = img1.shape[:2]
    h2, w2 = img2.shape[:2]
    width = max(w1, w2)

    if h1 > h2:
        save_png(pad_to(img2, h1, width), out)
        return in1, out, True
    elif h2 > h1:
        save_png(pad_to(img1, h2, width), out)
        return out, in2, True
    return in1, in2, False

# -------------------------
# Compositing
# -------------------------
def combine_images(*bufs):
    # lay the images out left to right, top-aligned
    if not bufs:
        raise ValueError("combine_images needs at least one image")
    width = sum(b.shape[1] for b in bufs)
    height = max(b.shape[0] for b in bufs)
    canvas = np.zeros((height, width, 4), dtype=np.uint8)
    x = 0
    for b in bufs:
        h, w = b.shape[:2]
        canvas[0:h, x:x+w, :] = b
        x += w
    return canvas

def main():
    if len(sys.argv) < 5:
        print("usage: composite.py a.png diff.png b.png out.png")
        return
    bufs = [load_png(p) for p in sys.argv[1:4]]
    out = combine_images(*bufs)
    save_png(out, sys.argv[4])
    print("Saved composite to", sys.argv[4], "size:", (out.shape[1], out.shape[0]))

if __name__ == '__main__':
    main()
