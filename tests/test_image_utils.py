import base64
import io

from PIL import Image

from app.image_utils import screenshot_to_data_uri, shrink_screenshot
from conftest import make_png


def _decode(data_uri: str) -> Image.Image:
    prefix = "data:image/png;base64,"
    assert data_uri.startswith(prefix)
    return Image.open(io.BytesIO(base64.b64decode(data_uri[len(prefix):])))


def test_data_uri_full_size():
    png = make_png(200, 100)
    img = _decode(screenshot_to_data_uri(png))
    assert img.size == (200, 100)
    assert img.format == "PNG"


def test_data_uri_downscaled():
    png = make_png(400, 200)
    img = _decode(screenshot_to_data_uri(png, max_width=100))
    assert img.size == (100, 50)


def test_shrink_noop_when_narrow():
    png = make_png(80, 40)
    assert shrink_screenshot(png, 100) is png
