"""Tests for the QOI decoder and encode/decode round trips."""
import io

import numpy as np
import pytest

import qoi
from bitmap import Bitmap, pack_color

END = bytes([0, 0, 0, 0, 0, 0, 0, 1])


def stream(width, height, ops, channels=4, colorspace=1, end=END):
    return (b'qoif' + width.to_bytes(4, 'big') + height.to_bytes(4, 'big')
            + bytes([channels, colorspace]) + bytes(ops) + end)


# ============================================================================
# Round trips
# ============================================================================

def test_round_trip_noise(noise_bitmap):
    assert qoi.decode(qoi.encode(noise_bitmap)) == noise_bitmap


def test_round_trip_random_rgba():
    rng = np.random.default_rng(99)
    bitmap = Bitmap(rng.integers(0, 256, size=(17, 13, 4), dtype=np.uint8))
    assert qoi.decode(qoi.encode(bitmap)) == bitmap


def test_round_trip_small_palette():
    rng = np.random.default_rng(7)
    palette = rng.integers(0, 256, size=(5, 4), dtype=np.uint8)
    bitmap = Bitmap(palette[rng.integers(0, 5, size=(40, 40))])
    assert qoi.decode(qoi.encode(bitmap)) == bitmap


def test_round_trip_wrapping_gradient():
    data = np.zeros((1, 600, 4), dtype=np.uint8)
    data[0, :, 0] = np.arange(600) % 256
    data[0, :, 1] = (np.arange(600) * 7) % 256
    data[0, :, 2] = (255 - np.arange(600)) % 256
    data[0, :, 3] = 255
    bitmap = Bitmap(data)
    assert qoi.decode(qoi.encode(bitmap)) == bitmap


def test_round_trip_solid_default_color():
    bitmap = Bitmap.new(300, 7)
    assert qoi.decode(qoi.encode(bitmap)) == bitmap


def test_round_trip_opaque_black_from_initial_cache():
    bitmap = Bitmap.new(2, 1)
    bitmap.set_pixel(0, 0, pack_color(200, 10, 10))
    assert qoi.decode(qoi.encode(bitmap)) == bitmap


def test_load_qoi(tmp_path, noise_bitmap):
    path = tmp_path / 'noise.qoi'
    qoi.save_qoi(noise_bitmap, path)
    assert qoi.load_qoi(path) == noise_bitmap


def test_decode_stream(noise_bitmap):
    assert qoi.decode_stream(io.BytesIO(qoi.encode(noise_bitmap))) == noise_bitmap


# ============================================================================
# Known streams
# ============================================================================

def test_decode_every_op():
    data = stream(7, 1, [
        0xfe, 10, 20, 30,        # RGB
        0x40 | 3 << 4 | 2 << 2 | 0,  # DIFF +1, 0, -2
        0x80 | 34, 9 << 4 | 7,   # LUMA vg=2, vg_r=1, vg_b=-1
        0xff, 1, 2, 3, 4,        # RGBA
        0xc1,                    # RUN 2
        9,                       # INDEX of (10, 20, 30, 255)
    ])
    bitmap = qoi.decode(data)
    assert list(bitmap.pixels()) == [
        (10, 20, 30, 255),
        (11, 20, 28, 255),
        (14, 22, 29, 255),
        (1, 2, 3, 4),
        (1, 2, 3, 4),
        (1, 2, 3, 4),
        (10, 20, 30, 255),
    ]


def test_read_header():
    header = qoi.read_header(stream(300, 2, [], channels=3, colorspace=0))
    assert header == qoi.Header(300, 2, 3, 0)


def test_three_channel_stream_decodes_opaque():
    bitmap = qoi.decode(stream(1, 1, [0xfe, 1, 2, 3], channels=3, colorspace=0))
    assert bitmap.rgba(0, 0) == (1, 2, 3, 255)


# ============================================================================
# Errors
# ============================================================================

@pytest.mark.parametrize('data', [
    b'',
    b'qoif',
    stream(1, 1, [0xfe, 1, 2, 3])[:-1],
    stream(2, 1, [0xfe, 1, 2, 3]),
    stream(1, 1, [0xfe, 1, 2]),
    stream(1, 1, [0xfe, 1, 2, 3], end=bytes(8)),
    stream(1, 1, [0xfe, 1, 2, 3], end=b''),
])
def test_truncated_or_unterminated(data):
    with pytest.raises(qoi.DecodeError):
        qoi.decode(data)


@pytest.mark.parametrize('data', [
    b'qoix' + stream(1, 1, [0xfe, 1, 2, 3])[4:],
    stream(0, 1, []),
    stream(1, 1, [0xfe, 1, 2, 3], channels=5),
    stream(1, 1, [0xfe, 1, 2, 3], colorspace=2),
    stream(0xffffffff, 0xffffffff, [0xfe, 1, 2, 3]),
    stream(20001, 20000, [0xfe, 1, 2, 3]),
])
def test_bad_header(data):
    with pytest.raises(qoi.DecodeError):
        qoi.decode(data)


def test_decode_error_is_value_error():
    with pytest.raises(ValueError):
        qoi.decode(b'not an image at all')


def test_pixel_count_larger_than_data():
    # 63 pixels cannot come out of one op byte
    with pytest.raises(qoi.DecodeError):
        qoi.decode(stream(63, 1, [0xc0 | 61]))
    assert qoi.decode(stream(62, 1, [0xc0 | 61])) == Bitmap.new(62, 1)


def test_read_header_pixel_limit():
    with pytest.raises(qoi.DecodeError):
        qoi.read_header(stream(0xffffffff, 0xffffffff, []))
    assert qoi.read_header(stream(20000, 20000, [])).width == 20000


def test_trailing_bytes_before_end_marker():
    with pytest.raises(qoi.DecodeError):
        qoi.decode(stream(1, 1, [0xfe, 1, 2, 3, 0x55, 0x55]))
