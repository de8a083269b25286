import random
from io import BytesIO

import pytest
from PIL import Image

from processor import InputFile, UpscaleSettings


def image_bytes(size=(8, 8), color=(100, 150, 200, 255), fmt="PNG", mode="RGBA"):
    img = Image.new(mode, size, color if mode == "RGBA" else color[:3])
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def noise_png(size=(64, 64), seed=0):
    rnd = random.Random(seed)
    data = bytes(rnd.getrandbits(8) for _ in range(size[0] * size[1] * 4))
    img = Image.frombytes("RGBA", size, data)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_file():
    def _make(name="img.png", size=(8, 8), color=(100, 150, 200, 255), fmt="PNG"):
        return InputFile(name=name, data=image_bytes(size, color, fmt))
    return _make


@pytest.fixture
def bogus_file():
    # plain text disguised with an image extension
    return InputFile(name="notes.png", data=b"this is not an image at all\n" * 4)


@pytest.fixture
def fast_settings():
    return UpscaleSettings(processing_delay=0.0)
