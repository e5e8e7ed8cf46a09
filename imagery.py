# imagery.py
import base64
import io
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode
from urllib.request import Request, urlopen

import numpy as np
from PIL import Image

from geom.flat_earth import BBox, LatLng

# Esri World Imagery export endpoint; bbox in EPSG:4326
IMAGERY_EXPORT_URL = "https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/export"
IMAGE_SIZE_PX = 512


@dataclass(frozen=True)
class ImageRef:
    """Reference to the imagery covering one footprint."""
    url: str
    footprint: BBox
    center: LatLng
    scan_count: int = 0


def footprint_image_url(bbox: BBox, size_px: int = IMAGE_SIZE_PX) -> str:
    qs = urlencode({
        "bbox": bbox.as_query(),
        "bboxSR": 4326,
        "size": f"{size_px},{size_px}",
        "format": "jpg",
        "f": "image",
    })
    return f"{IMAGERY_EXPORT_URL}?{qs}"


def image_ref_for(bbox: BBox, center: LatLng, scan_count: int = 0) -> ImageRef:
    return ImageRef(url=footprint_image_url(bbox), footprint=bbox, center=center, scan_count=scan_count)


# ---------- HTTP ----------
def fetch_image_bytes(url: str, timeout: float = 15) -> bytes:
    req = Request(url, headers={
        "User-Agent": "arctic-patrol/1.0",
        "Referer": "https://www.arcgis.com",
    })
    with urlopen(req, timeout=timeout) as r:
        return r.read()


# ---------- placeholder detection ----------
def looks_like_placeholder(image_rgb: Image.Image) -> bool:
    """Heuristic for Esri 'no data' imagery:
       mostly flat gray (#C9C9C9~#D0D0D0), maybe tiny white text.
       Placeholder if >95% pixels are near-neutral and within 12 of gray 200.
    """
    arr = np.asarray(image_rgb, dtype=np.uint8)
    rg = np.abs(arr[:, :, 0].astype(int) - arr[:, :, 1].astype(int))
    gb = np.abs(arr[:, :, 1].astype(int) - arr[:, :, 2].astype(int))
    gray_like = (rg < 6) & (gb < 6)

    mean_gray = arr.mean(axis=2)
    near_200 = np.abs(mean_gray - 200) < 12

    mask = gray_like & near_200
    return bool(mask.mean() > 0.95)


def is_uniform(image_rgb: Image.Image) -> bool:
    extrema = image_rgb.getextrema()
    return all(lo == hi for (lo, hi) in extrema)


def decode_image(data: bytes) -> Image.Image:
    """Decode raw bytes into RGB; raises PIL.UnidentifiedImageError on garbage."""
    return Image.open(io.BytesIO(data)).convert("RGB")


def encode_pil_image_as_data_url(img: Image.Image, fmt: str = "JPEG", quality: int = 92,
                                 max_edge: Optional[int] = IMAGE_SIZE_PX) -> str:
    if max_edge and max(img.size) > max_edge:
        img = img.copy()
        img.thumbnail((max_edge, max_edge))
    buf = io.BytesIO()
    save_kwargs = {"format": fmt}
    if fmt.upper() in {"JPEG", "JPG"}:
        save_kwargs["quality"] = quality
    img.save(buf, **save_kwargs)
    b64 = base64.b64encode(buf.getvalue()).decode("ascii")
    mime = "image/jpeg" if fmt.upper() in {"JPEG", "JPG"} else f"image/{fmt.lower()}"
    return f"data:{mime};base64,{b64}"
