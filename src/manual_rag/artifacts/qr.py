"""QR code artifact generation."""

from __future__ import annotations

import base64
import io
from abc import ABC, abstractmethod
from urllib.parse import quote

import qrcode
from qrcode.image.pil import PilImage

from manual_rag.config import settings
from manual_rag.errors import ProviderError, ValidationError


class ArtifactGenerator(ABC):
    """Turns an artifact's source content into its payload."""

    @abstractmethod
    def generate(self, source: str) -> str:
        """Return the payload for *source* or raise :class:`ProviderError`."""
        ...


class QRCodeGenerator(ArtifactGenerator):
    """Render a string as a PNG QR code, returned as a ``data:`` URL.

    Parameters
    ----------
    size_px:
        Target edge length; the module size is the largest that fits.
    border:
        Quiet-zone width in modules.
    """

    def __init__(
        self,
        *,
        size_px: int = 300,
        border: int = 2,
        fill_color: str = "#000000",
        back_color: str = "#ffffff",
    ) -> None:
        self.size_px = size_px
        self.border = border
        self.fill_color = fill_color
        self.back_color = back_color

    def generate(self, source: str) -> str:
        if not source:
            raise ProviderError("Missing data URL")
        try:
            qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, border=self.border)
            qr.add_data(source)
            qr.make(fit=True)
            qr.box_size = max(1, self.size_px // (qr.modules_count + 2 * self.border))
            image = qr.make_image(
                image_factory=PilImage,
                fill_color=self.fill_color,
                back_color=self.back_color,
            )
            buf = io.BytesIO()
            image.save(buf, format="PNG")
        except Exception as exc:
            raise ProviderError(f"QR generation failed: {exc}") from exc
        return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def build_chat_url(
    base_url: str = settings.qr_base_url,
    *,
    qr_text_tag: str | None = None,
    business_id: str | None = None,
    product_name: str = "",
    query: str | None = None,
) -> str:
    """Build the chat URL a product's QR code points to.

    A product with a text tag gets ``/iqr/chat/<tag>``; otherwise the
    business chat is opened with a pre-filled query (default
    ``"<product name> describe"``).
    """
    base = base_url.rstrip("/")
    if qr_text_tag:
        return f"{base}/iqr/chat/{qr_text_tag}"
    if not business_id:
        raise ValidationError("business_id is required when no qr_text_tag is given")
    text = query or f"{product_name} describe"
    return f"{base}/iqr/chat/{business_id}?sent={quote(text, safe='')}"
