"""QR code images for item labels."""
from __future__ import annotations

import io
import json
from typing import TYPE_CHECKING

import qrcode
from PIL import Image, ImageDraw, ImageFont

if TYPE_CHECKING:
    from app.truinventory.modules.items.models import Item


QR_FORMATS = ("normal", "label")


def qr_payload(item: "Item", base_url: str = "") -> str:
    """
    Text encoded in an item's QR code: a link to the item when a base URL is
    configured, else a small JSON summary that scanners can show offline.
    """
    if base_url:
        return f"{base_url.rstrip('/')}/inventory/{item.id}"
    return json.dumps(
        {
            "id": item.id,
            "qrCode": item.qr_code,
            "name": item.name,
            "quantity": item.quantity,
            "category": item.category.name if item.category else None,
            "location": item.location.name if item.location else None,
        },
        separators=(",", ":"),
    )


def _qr_image(data: str, box_size: int, border: int) -> Image.Image:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)
    return qr.make_image(fill_color="black", back_color="white").convert("RGB")


def _to_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def build_qr_png(data: str) -> bytes:
    return _to_png(_qr_image(data, box_size=8, border=4))


def build_label_png(data: str, title: str, subtitle: str = "Scan for details") -> bytes:
    """Printable label: compact QR code with the item name and a subtitle underneath."""
    qr_img = _qr_image(data, box_size=4, border=2)
    font = ImageFont.load_default()

    measure = ImageDraw.Draw(Image.new("RGB", (10, 10), "white"))
    lines = [(title or "").strip() or "-", subtitle]
    boxes = [measure.textbbox((0, 0), line, font=font) for line in lines]
    widths = [b[2] - b[0] for b in boxes]
    line_h = max(b[3] - b[1] for b in boxes)

    pad, gap, line_gap = 12, 8, 4
    text_h = line_h * len(lines) + line_gap * (len(lines) - 1)
    out_w = pad + max(qr_img.width, max(widths)) + pad
    out_h = pad + qr_img.height + gap + text_h + pad

    canvas = Image.new("RGB", (out_w, out_h), "white")
    canvas.paste(qr_img, ((out_w - qr_img.width) // 2, pad))

    draw = ImageDraw.Draw(canvas)
    y = pad + qr_img.height + gap
    for idx, line in enumerate(lines):
        x = (out_w - widths[idx]) // 2
        draw.text((x, y), line, fill="black" if idx == 0 else "#555555", font=font)
        y += line_h + line_gap
    return _to_png(canvas)
