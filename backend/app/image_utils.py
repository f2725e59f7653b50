"""Screenshot encoding for API responses."""
from PIL import Image
import io
import base64


def shrink_screenshot(png_bytes: bytes, max_width: int) -> bytes:
    """
    Downscale a PNG screenshot to max_width, keeping the aspect ratio.
    Returns the input untouched when it is already narrow enough.
    """
    img = Image.open(io.BytesIO(png_bytes))

    w, h = img.size
    if w <= max_width:
        return png_bytes

    ratio = max_width / w
    img = img.resize((max_width, max(1, int(h * ratio))), Image.LANCZOS)

    buf = io.BytesIO()
    img.save(buf, format="PNG", optimize=True)
    return buf.getvalue()


def screenshot_to_data_uri(png_bytes: bytes, max_width: int = 0) -> str:
    """PNG bytes -> data:image/png;base64,... (max_width=0 keeps full size)."""
    if max_width:
        png_bytes = shrink_screenshot(png_bytes, max_width)
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode()
