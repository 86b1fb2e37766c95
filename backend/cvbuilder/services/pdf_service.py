"""PDF export for documents using Jinja2 and headless Chromium (Playwright).

HTML is rendered from ``templates/cv.html`` / ``templates/cover_letter.html``
with colors and font taken from the template styles, overridden by the
document's own customizations. Free-tier downloads carry a diagonal
watermark baked into the HTML.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from cvbuilder.core.config import get_settings
from cvbuilder.core.exceptions import PDFRenderError
from cvbuilder.domain.credits import FREE_TIER_PURCHASE_CEILING
from cvbuilder.domain.documents import DEFAULT_CUSTOMIZATIONS, DocumentType

logger = structlog.get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

PAGE_MARGINS = {"top": "20mm", "right": "15mm", "bottom": "20mm", "left": "15mm"}

_LINE_HEIGHT = {"compact": "1.35", "normal": "1.5", "relaxed": "1.7"}


def pdf_filename(document_name: str) -> str:
    """``"CV - Acme Corp"`` -> ``"CV___Acme_Corp.pdf"``."""
    return re.sub(r"[^a-zA-Z0-9]", "_", document_name) + ".pdf"


def needs_watermark(watermark_free: bool, total_purchased) -> bool:
    """Free-tier users (never bought beyond the starting allowance) get a watermark."""
    return watermark_free and total_purchased <= FREE_TIER_PURCHASE_CEILING


class PDFExporter:
    """Render documents to HTML and print them to A4 PDF."""

    def __init__(self) -> None:
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )

    def _style(self, template_styles: dict | None, customizations: dict | None) -> dict[str, str]:
        """Template styles first, document customizations on top."""
        styles = template_styles or {}
        colors = styles.get("colorScheme") or []
        fonts = styles.get("fonts") or []
        base = {
            **DEFAULT_CUSTOMIZATIONS,
            **({"primaryColor": colors[0]} if colors else {}),
            **({"secondaryColor": colors[2]} if len(colors) > 2 else {}),
            **({"fontFamily": fonts[0]} if fonts else {}),
        }
        custom = {**base, **(customizations or {})}

        return {
            "primary_color": custom["primaryColor"],
            "secondary_color": custom["secondaryColor"],
            "text_color": colors[1] if len(colors) > 1 else "#1e293b",
            "font_family": custom["fontFamily"],
            "font_size": custom["fontSize"],
            "line_height": _LINE_HEIGHT.get(custom["spacing"], _LINE_HEIGHT["normal"]),
        }

    def render_html(
        self,
        doc_type: str,
        name: str,
        content: dict[str, Any],
        template_styles: dict | None,
        person: dict[str, Any],
        company_name: str | None = None,
        watermark: bool = False,
    ) -> str:
        """Render a document's HTML.

        Args:
            doc_type: ``CV`` or ``COVER_LETTER``
            name: Document name, used as the HTML title
            content: Document content (``sections`` + ``customizations``)
            template_styles: The template's ``styles`` JSON
            person: Header fields (name, email, phone, location, ...)
            company_name: Addressee line for cover letters
            watermark: Overlay the free-tier watermark
        """
        template_name = "cv.html" if doc_type == DocumentType.CV else "cover_letter.html"
        return self.env.get_template(template_name).render(
            title=name,
            sections=content.get("sections") or {},
            style=self._style(template_styles, content.get("customizations")),
            person=person,
            company_name=company_name,
            date=datetime.now().strftime("%B %d, %Y"),
            watermark=watermark,
        )

    async def render_pdf(self, html: str) -> bytes:
        """Print ``html`` to an A4 PDF with a fresh headless Chromium.

        Raises:
            PDFRenderError: browser launch, load or print failed
        """
        settings = get_settings()
        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(
                    headless=True,
                    args=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"],
                )
                try:
                    page = await browser.new_page()
                    await page.set_content(html, wait_until="networkidle", timeout=settings.pdf_render_timeout_ms)
                    pdf_bytes: bytes = await page.pdf(format="A4", margin=PAGE_MARGINS, print_background=True)
                finally:
                    await browser.close()
        except PlaywrightError as exc:
            logger.error("pdf_render_failed", error=str(exc), error_type=type(exc).__name__)
            raise PDFRenderError("Failed to generate PDF") from exc

        logger.info("pdf_rendered", size_bytes=len(pdf_bytes))
        return pdf_bytes


_exporter: PDFExporter | None = None


def get_pdf_exporter() -> PDFExporter:
    global _exporter
    if _exporter is None:
        _exporter = PDFExporter()
    return _exporter
