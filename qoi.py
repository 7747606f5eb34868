"""Quite OK Image (QOI) encoder and decoder.

Stream layout::

    "qoif" | width u32 BE | height u32 BE | channels | colorspace
    op stream
    00 00 00 00 00 00 00 01

Op tags::

    00xxxxxx  INDEX  cache slot
    01rrggbb  DIFF   biased deltas -2..1
    10gggggg  LUMA   green delta -32..31, then rrrrbbbb -8..7 relative to green
    11xxxxxx  RUN    run length - 1, 1..62
    11111110  RGB    + r, g, b
    11111111  RGBA   + r, g, b, a
"""
import logging
import numbers
from collections import Counter
from dataclasses import dataclass

import numpy as np
from PIL import Image

from bitmap import Bitmap, get_alpha, get_blue, get_green, get_red

logger = logging.getLogger(__name__)

QOI_OP_INDEX = 0x00  # 00xxxxxx
QOI_OP_DIFF = 0x40   # 01xxxxxx
QOI_OP_LUMA = 0x80   # 10xxxxxx
QOI_OP_RUN = 0xc0    # 11xxxxxx
QOI_OP_RGB = 0xfe    # 11111110
QOI_OP_RGBA = 0xff   # 11111111
QOI_MASK_2 = 0xc0    # 11000000

QOI_MAGIC = b'qoif'
QOI_SRGB = 0
QOI_LINEAR = 1
QOI_CHANNELS = 4
QOI_HEADER_SIZE = 14
QOI_MAX_RUN = 62
QOI_MAX_DIMENSION = 0xffffffff
QOI_PIXELS_MAX = 400000000
HASH_SIZE = 64

qoi_padding = bytes([0, 0, 0, 0, 0, 0, 0, 1])

qoi_ops = ['QOI_OP_RUN', 'QOI_OP_INDEX', 'QOI_OP_DIFF',
           'QOI_OP_LUMA', 'QOI_OP_RGB', 'QOI_OP_RGBA']


class QOIError(Exception):
    pass


class InvalidInput(QOIError, ValueError):
    """The pixel source cannot be encoded."""


class DecodeError(QOIError, ValueError):
    """The byte stream is not a well-formed QOI image."""


@dataclass(frozen=True)
class Pixel:
    red: int = 0
    green: int = 0
    blue: int = 0
    alpha: int = 255

    @classmethod
    def from_packed(cls, value: int) -> 'Pixel':
        return cls(get_red(value), get_green(value), get_blue(value), get_alpha(value))

    def __str__(self):
        return f"R: {self.red} G: {self.green} B: {self.blue} A: {self.alpha}"

    @property
    def packed(self) -> int:
        return self.alpha << 24 | self.red << 16 | self.green << 8 | self.blue

    @property
    def hash(self) -> int:
        return color_hash(self.red, self.green, self.blue, self.alpha)

    def astuple(self) -> tuple:
        return self.red, self.green, self.blue, self.alpha


empty_pixel = Pixel()


@dataclass(frozen=True)
class Header:
    width: int
    height: int
    channels: int = QOI_CHANNELS
    colorspace: int = QOI_LINEAR


def color_hash(r: int, g: int, b: int, a: int) -> int:
    return (r * 3 + g * 5 + b * 7 + a * 11) % HASH_SIZE


def wrap_delta(a: int, b: int) -> int:
    # a - b in 8-bit arithmetic, as a signed value in -128..127
    return (384 + a - b) % 256 - 128


class Writer:
    """Collects encoded bytes, handing them to ``sink`` once ``chunk_size``
    bytes have piled up. Without a sink everything stays in memory and is
    returned by ``output()``."""

    def __init__(self, sink=None, chunk_size: int = 64 * 1024):
        self.sink = sink
        self.chunk_size = chunk_size
        self.buffer = bytearray()
        self.written = 0

    def write(self, value: int) -> None:
        self.buffer.append(value)
        if self.sink is not None and len(self.buffer) >= self.chunk_size:
            self.flush()

    def write_bytes(self, data) -> None:
        self.buffer.extend(data)
        if self.sink is not None and len(self.buffer) >= self.chunk_size:
            self.flush()

    def write_32(self, value: int) -> None:
        self.write_bytes(value.to_bytes(4, byteorder='big'))

    def flush(self) -> None:
        if self.sink is None or not self.buffer:
            return
        self.sink.write(bytes(self.buffer))
        self.written += len(self.buffer)
        self.buffer.clear()

    def output(self) -> bytes:
        return bytes(self.buffer)


def validate_source(source) -> None:
    for name in ('width', 'height'):
        value = getattr(source, name, None)
        if (not isinstance(value, numbers.Integral) or isinstance(value, bool)
                or not 0 < value <= QOI_MAX_DIMENSION):
            raise InvalidInput(f"Not a bitmap: {name} is {value!r}")
    if not callable(getattr(source, 'get_pixel', None)):
        raise InvalidInput("Not a bitmap: no get_pixel()")


def write_header(writer: Writer, width: int, height: int) -> None:
    writer.write_bytes(QOI_MAGIC)
    writer.write_32(width)
    writer.write_32(height)
    writer.write(QOI_CHANNELS)
    writer.write(QOI_LINEAR)


def write_end(writer: Writer) -> None:
    writer.write_bytes(qoi_padding)


def scan_pixels(source):
    """Yield the pixels of ``source`` in row-major order."""
    if isinstance(source, Bitmap) and type(source).get_pixel is Bitmap.get_pixel:
        for px in source.pixels():
            yield Pixel(*px)
        return
    for y in range(source.height):
        for x in range(source.width):
            yield Pixel.from_packed(source.get_pixel(x, y))


def encode_pixels(writer: Writer, pixels, total_size: int, stats: Counter = None) -> None:
    def emit(op, *values):
        if stats is not None:
            stats[op] += 1
        if len(values) == 1:
            writer.write(values[0])
        else:
            writer.write_bytes(values)

    hash_array = [empty_pixel] * HASH_SIZE
    run = 0
    prev_px = empty_pixel
    for i, px in enumerate(pixels):
        if px == prev_px:
            run += 1
            if run == QOI_MAX_RUN or (i + 1) >= total_size:
                emit('QOI_OP_RUN', QOI_OP_RUN | (run - 1))
                run = 0
            continue

        if run:
            emit('QOI_OP_RUN', QOI_OP_RUN | (run - 1))
            run = 0

        index_pos = px.hash
        if hash_array[index_pos] == px:
            emit('QOI_OP_INDEX', QOI_OP_INDEX | index_pos)
            prev_px = px
            continue
        hash_array[index_pos] = px

        if px.alpha != prev_px.alpha:
            emit('QOI_OP_RGBA', QOI_OP_RGBA, px.red, px.green, px.blue, px.alpha)
            prev_px = px
            continue

        vr = wrap_delta(px.red, prev_px.red)
        vg = wrap_delta(px.green, prev_px.green)
        vb = wrap_delta(px.blue, prev_px.blue)

        vg_r = vr - vg
        vg_b = vb - vg

        if all(-3 < x < 2 for x in (vr, vg, vb)):
            emit('QOI_OP_DIFF', QOI_OP_DIFF | (vr + 2) << 4 | (vg + 2) << 2 | (vb + 2))
        elif all(-9 < x < 8 for x in (vg_r, vg_b)) and -33 < vg < 32:
            emit('QOI_OP_LUMA', QOI_OP_LUMA | (vg + 32), (vg_r + 8) << 4 | (vg_b + 8))
        else:
            emit('QOI_OP_RGB', QOI_OP_RGB, px.red, px.green, px.blue)
        prev_px = px


def _as_source(source):
    if isinstance(source, Image.Image):
        return Bitmap.from_image(source)
    return source


def encode_stream(source, out, stats: Counter = None) -> int:
    """Encode ``source`` as QOI into the writable binary stream ``out``.

    Returns the number of bytes written. Nothing is written when the source
    is rejected; errors raised by ``out`` propagate untouched.
    """
    source = _as_source(source)
    validate_source(source)
    writer = Writer(out)
    _encode(writer, source, stats)
    writer.flush()
    return writer.written


def encode(source, stats: Counter = None) -> bytes:
    source = _as_source(source)
    validate_source(source)
    writer = Writer()
    _encode(writer, source, stats)
    return writer.output()


def encode_array(img, width: int, height: int, stats: Counter = None) -> bytes:
    return encode(Bitmap.from_array(img, width, height), stats)


def _encode(writer: Writer, source, stats: Counter = None) -> None:
    width, height = int(source.width), int(source.height)
    write_header(writer, width, height)
    encode_pixels(writer, scan_pixels(source), width * height, stats)
    write_end(writer)
    logger.debug("encoded %dx%d image", width, height)


def save_qoi(source, filename, stats: Counter = None) -> int:
    source = _as_source(source)
    # validate before the file gets created
    validate_source(source)
    with open(filename, 'wb') as f:
        return encode_stream(source, f, stats)


# decoding
# ---------------


def read_header(data: bytes) -> Header:
    if len(data) < QOI_HEADER_SIZE:
        raise DecodeError("File truncated")
    if data[:4] != QOI_MAGIC:
        raise DecodeError("Incorrect magic header")
    width = int.from_bytes(data[4:8], byteorder='big')
    height = int.from_bytes(data[8:12], byteorder='big')
    channels, colorspace = data[12], data[13]
    if width == 0 or height == 0:
        raise DecodeError(f"Invalid image size {width}x{height}")
    if width * height > QOI_PIXELS_MAX:
        raise DecodeError(f"Image too large {width}x{height}")
    if channels not in (3, 4):
        raise DecodeError(f"Unsupported channel count {channels}")
    if colorspace not in (QOI_SRGB, QOI_LINEAR):
        raise DecodeError(f"Unsupported colorspace {colorspace}")
    return Header(width, height, channels, colorspace)


def decode(data) -> Bitmap:
    data = memoryview(data)
    header = read_header(data)
    total_size = header.width * header.height
    end = len(data) - len(qoi_padding)
    # a single op byte covers at most one full run
    if total_size > (end - QOI_HEADER_SIZE) * QOI_MAX_RUN:
        raise DecodeError("File truncated")
    out = np.empty((total_size, 4), dtype=np.uint8)

    hash_array = [empty_pixel.astuple()] * HASH_SIZE
    r, g, b, a = empty_pixel.astuple()
    pos = QOI_HEADER_SIZE
    run = 0
    try:
        for i in range(total_size):
            if run:
                run -= 1
            else:
                if pos >= end:
                    raise DecodeError("File truncated")
                b1 = data[pos]
                pos += 1
                if b1 == QOI_OP_RGB:
                    r, g, b = data[pos], data[pos + 1], data[pos + 2]
                    pos += 3
                elif b1 == QOI_OP_RGBA:
                    r, g, b, a = data[pos], data[pos + 1], data[pos + 2], data[pos + 3]
                    pos += 4
                elif (b1 & QOI_MASK_2) == QOI_OP_INDEX:
                    r, g, b, a = hash_array[b1]
                elif (b1 & QOI_MASK_2) == QOI_OP_DIFF:
                    r = (r + ((b1 >> 4) & 0x03) - 2) & 0xff
                    g = (g + ((b1 >> 2) & 0x03) - 2) & 0xff
                    b = (b + (b1 & 0x03) - 2) & 0xff
                elif (b1 & QOI_MASK_2) == QOI_OP_LUMA:
                    b2 = data[pos]
                    pos += 1
                    vg = (b1 & 0x3f) - 32
                    r = (r + vg - 8 + ((b2 >> 4) & 0x0f)) & 0xff
                    g = (g + vg) & 0xff
                    b = (b + vg - 8 + (b2 & 0x0f)) & 0xff
                else:
                    run = b1 & 0x3f
                hash_array[color_hash(r, g, b, a)] = (r, g, b, a)
            out[i] = (r, g, b, a)
    except IndexError:
        raise DecodeError("File truncated") from None

    if pos < end:
        raise DecodeError(f"{end - pos} unexpected bytes after the last pixel")
    if pos > end or data[end:] != qoi_padding:
        raise DecodeError("Missing end marker")
    logger.debug("decoded %dx%d image", header.width, header.height)
    return Bitmap(out.reshape(header.height, header.width, 4))


def decode_stream(stream) -> Bitmap:
    return decode(stream.read())


def load_qoi(filename) -> Bitmap:
    with open(filename, 'rb') as f:
        return decode_stream(f)

