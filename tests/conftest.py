import matplotlib

matplotlib.use('Agg')

import pytest

from bitmap import Bitmap, pack_color


def make_row(*pixels):
    """Build a 1-pixel-high bitmap from (r, g, b, a) tuples."""
    bitmap = Bitmap.new(len(pixels), 1)
    for x, px in enumerate(pixels):
        bitmap.set_pixel(x, 0, pack_color(*px))
    return bitmap


@pytest.fixture
def row():
    return make_row


@pytest.fixture
def noise_bitmap():
    """Random RGBA noise mixed with flat areas and a small palette."""
    import numpy as np
    rng = np.random.default_rng(1234)
    data = rng.integers(0, 256, size=(24, 32, 4), dtype=np.uint8)
    data[:, :, 3] = 255
    data[4:8, :, :] = (12, 34, 56, 255)
    data[10:14, :, 3] = rng.integers(0, 2, size=(4, 32)) * 255
    palette = np.array([[0, 0, 0, 255], [255, 255, 255, 255], [10, 20, 30, 40]], dtype=np.uint8)
    data[16:20] = palette[rng.integers(0, 3, size=(4, 32))]
    # slow gradients exercise DIFF and LUMA
    data[20:24, :, 0] = (np.arange(32) * 3) % 256
    data[20:24, :, 1] = (np.arange(32) * 5) % 256
    data[20:24, :, 2] = (250 + np.arange(32)) % 256
    data[20:24, :, 3] = 255
    return Bitmap(data)
