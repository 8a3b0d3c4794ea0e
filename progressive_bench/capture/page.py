"""Harness document and the page surface the capture loop drives."""

from __future__ import annotations

import html
import math
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from ..config import RenderSettings

TARGET_ELEMENT_ID = "tgt"

_HARNESS_TEMPLATE = """<!doctype html>
<html><head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1" />
<style>
  html, body {{ height: 100%; margin: 0; background: {bg}; }}
  .wrap {{ display:flex; align-items:center; justify-content:center; height:100%; }}
  img {{ max-width:95vw; max-height:95vh; object-fit:{fit}; image-rendering:auto; }}
</style></head>
<body>
<div class="wrap"><img id="{element_id}" src="{url}" decoding="auto" loading="eager" /></div>
</body></html>"""

# Bounding box of the target image in CSS pixels plus the device pixel ratio.
IMAGE_BOX_SCRIPT = """() => {
  const el = document.getElementById('%s');
  const r = el.getBoundingClientRect();
  return { x: Math.max(0, r.x), y: Math.max(0, r.y), width: r.width, height: r.height,
           dpr: window.devicePixelRatio || 1 };
}""" % TARGET_ELEMENT_ID

IMAGE_COMPLETE_SCRIPT = """() => {
  const img = document.getElementById('%s');
  return !!img && img.complete && img.naturalWidth > 0;
}""" % TARGET_ELEMENT_ID


def render_harness_html(url: str, render: RenderSettings | None = None) -> str:
    render = render or RenderSettings()
    return _HARNESS_TEMPLATE.format(
        bg=html.escape(render.bg, quote=True),
        fit=html.escape(render.fit, quote=True),
        element_id=TARGET_ELEMENT_ID,
        url=html.escape(url, quote=True),
    )


@dataclass(frozen=True)
class CaptureRegion:
    """Screenshot clip in device pixels."""

    x: int
    y: int
    width: int
    height: int
    dpr: float = 1.0

    @classmethod
    def from_box(cls, box: Mapping[str, Any]) -> "CaptureRegion":
        dpr = float(box.get("dpr") or 1)
        return cls(
            x=int(math.floor(float(box.get("x") or 0) * dpr)),
            y=int(math.floor(float(box.get("y") or 0) * dpr)),
            width=max(1, int(math.ceil(float(box.get("width") or 0) * dpr))),
            height=max(1, int(math.ceil(float(box.get("height") or 0) * dpr))),
            dpr=dpr,
        )

    def to_clip(self) -> dict[str, float]:
        """Clip rectangle in CSS pixels, as screenshot APIs expect."""

        return {
            "x": self.x / self.dpr,
            "y": self.y / self.dpr,
            "width": self.width / self.dpr,
            "height": self.height / self.dpr,
        }


class BenchPage(Protocol):
    """What the capture loop needs from a browsing context."""

    def load_harness(self, html_doc: str, timeout_ms: float) -> None:
        ...

    def image_box(self) -> Mapping[str, Any]:
        ...

    def screenshot(self, region: CaptureRegion) -> bytes:
        ...

    def image_complete(self) -> bool:
        ...

    def wait(self, ms: float) -> None:
        ...
