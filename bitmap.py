import numpy as np
from PIL import Image

# Packed colors are 0xAARRGGBB.


def pack_color(red: int, green: int, blue: int, alpha: int = 255) -> int:
    return (alpha & 0xff) << 24 | (red & 0xff) << 16 | (green & 0xff) << 8 | (blue & 0xff)


def get_red(color: int) -> int:
    return (color >> 16) & 0xff


def get_green(color: int) -> int:
    return (color >> 8) & 0xff


def get_blue(color: int) -> int:
    return color & 0xff


def get_alpha(color: int) -> int:
    return (color >> 24) & 0xff


def unpack_color(color: int) -> tuple:
    return get_red(color), get_green(color), get_blue(color), get_alpha(color)


class Bitmap:
    """An RGBA pixel grid backed by a (height, width, 4) uint8 numpy array.

    This is the pixel source the encoder reads from and the decoder
    produces. Anything else exposing ``width``, ``height`` and
    ``get_pixel(x, y)`` returning a packed color works as a source too.
    """

    def __init__(self, pixels: np.ndarray):
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected a (height, width, 4) array, got {pixels.shape}")
        self.pixels_array = pixels.astype(np.uint8, copy=False)

    @classmethod
    def new(cls, width: int, height: int, color: int = pack_color(0, 0, 0)) -> 'Bitmap':
        data = np.empty((height, width, 4), dtype=np.uint8)
        data[:, :] = unpack_color(color)
        return cls(data)

    @classmethod
    def from_array(cls, img, width: int = None, height: int = None) -> 'Bitmap':
        data = np.asarray(img, dtype=np.uint8)
        if width is not None and height is not None:
            data = data.reshape(height, width, 4)
        return cls(data)

    @classmethod
    def from_image(cls, image: Image.Image) -> 'Bitmap':
        if image.mode != 'RGBA':
            image = image.convert('RGBA')
        return cls(np.array(image))

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels_array)

    @property
    def width(self) -> int:
        return self.pixels_array.shape[1]

    @property
    def height(self) -> int:
        return self.pixels_array.shape[0]

    def rgba(self, x: int, y: int) -> tuple:
        r, g, b, a = self.pixels_array[y, x]
        return int(r), int(g), int(b), int(a)

    def get_pixel(self, x: int, y: int) -> int:
        return pack_color(*self.rgba(x, y))

    def set_pixel(self, x: int, y: int, color: int) -> None:
        self.pixels_array[y, x] = unpack_color(color)

    def pixels(self):
        """Yield every pixel as an (r, g, b, a) tuple in row-major order."""
        for px in self.pixels_array.reshape(-1, 4).tolist():
            yield tuple(px)

    def __eq__(self, other):
        if not isinstance(other, Bitmap):
            return NotImplemented
        return np.array_equal(self.pixels_array, other.pixels_array)

    def __repr__(self):
        return f"Bitmap({self.width}x{self.height})"
