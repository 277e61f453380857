"""Rebuild reading order from positioned text fragments."""
import logging
from typing import Iterable, List, Optional

import fitz  # PyMuPDF

from extrato.config import config
from extrato.models.schemas import PositionedFragment, ReconstructedLine

logger = logging.getLogger(__name__)


class LayoutReconstructor:
    """
    Group fragments into lines by vertical position.

    Fragments are sorted top of page first (``y`` descending, page space),
    a new line starts whenever two consecutive fragments are more than
    ``y_tolerance`` apart vertically, and each line is read left to right.
    Never raises on odd input: the worst case is a poor line grouping.
    """

    def __init__(self, y_tolerance: Optional[float] = None):
        """
        Args:
            y_tolerance: Maximum vertical delta for fragments on the same line
        """
        self.y_tolerance = config.y_tolerance if y_tolerance is None else y_tolerance

    def reconstruct_lines(self, fragments: Iterable[PositionedFragment]) -> List[ReconstructedLine]:
        """Order one page's fragments into lines."""
        ordered = sorted(fragments, key=lambda f: -f.y)

        lines: List[ReconstructedLine] = []
        current: List[PositionedFragment] = []
        previous_y = None
        for fragment in ordered:
            if previous_y is not None and abs(previous_y - fragment.y) > self.y_tolerance:
                lines.append(self._build_line(current))
                current = []
            current.append(fragment)
            previous_y = fragment.y
        if current:
            lines.append(self._build_line(current))

        return lines

    def _build_line(self, fragments: List[PositionedFragment]) -> ReconstructedLine:
        return ReconstructedLine(
            y=fragments[0].y,
            fragments=sorted(fragments, key=lambda f: f.x),
        )

    def reconstruct_page_text(self, fragments: Iterable[PositionedFragment]) -> str:
        """Page text with one reconstructed line per text line."""
        buffer = ""
        for line in self.reconstruct_lines(fragments):
            for fragment in line.fragments:
                if not fragment.text:
                    continue
                if buffer and not buffer.endswith("\n"):
                    buffer += " "
                buffer += fragment.text
            if buffer and not buffer.endswith("\n"):
                buffer += "\n"
        return buffer.rstrip("\n")

    def reconstruct_document_text(self, pages: Iterable[Iterable[PositionedFragment]]) -> str:
        """Concatenate reconstructed pages in page order."""
        return "\n".join(self.reconstruct_page_text(page) for page in pages)


def page_fragments(page: "fitz.Page", page_number: int = 0) -> List[PositionedFragment]:
    """
    Read word fragments from a PyMuPDF page.

    PyMuPDF measures ``y`` downwards from the top; it is flipped here so the
    fragments use PDF page space like any other source.
    """
    height = page.rect.height
    fragments = []
    for word in page.get_text("words"):
        x0, _y0, _x1, y1, text = word[:5]
        fragments.append(PositionedFragment(
            text=text,
            x=float(x0),
            y=float(height - y1),
            page=page_number,
        ))
    return fragments


def document_fragments(doc: "fitz.Document") -> List[List[PositionedFragment]]:
    """Fragments for every page of an open document, in page order."""
    pages = []
    for page_num in range(len(doc)):
        pages.append(page_fragments(doc[page_num], page_num))
    logger.debug("Read fragments from %d page(s)", len(pages))
    return pages
