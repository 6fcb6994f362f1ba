# src/infrastructure/page_search.py

import re
from typing import Dict, List, Tuple

import fitz

from src.domain.errors import ExternalServiceError
from src.domain.interfaces import PageSearchPort
from src.domain.models import Anchor
from src.infrastructure.pdf_text_extractor import to_local_path


_NON_ALNUM = re.compile(r"[^a-z0-9]")

# (x0, y0, x1, y1, word, block_no, line_no, word_no)
Word = Tuple[float, float, float, float, str, int, int, int]


def _normalize(word: str) -> str:
    return _NON_ALNUM.sub("", word.lower())


class PdfPageSearch(PageSearchPort):
    """
    Locates terms in a PDF's text layer with PyMuPDF.

    A term matches a run of consecutive words whose normalized forms start
    with the term's words in order ("enzyme" finds "Enzymes,"). Each matched
    line becomes one anchor; `context_radius` neighbouring lines on either
    side form the snippet. Anchors come back page by page, top to bottom.
    """

    def search(self, terms: List[str], source_url: str, context_radius: int = 1) -> List[Anchor]:
        term_words = [[w for w in (_normalize(t) for t in term.split()) if w] for term in terms]
        term_words = [words for words in term_words if words]
        if not term_words:
            return []

        file_path = to_local_path(source_url)
        try:
            with fitz.open(str(file_path)) as pdf:
                anchors: List[Anchor] = []
                for page_index, page in enumerate(pdf):
                    anchors.extend(self._search_page(page, page_index + 1, term_words, context_radius))
                return anchors
        except Exception as error:
            raise ExternalServiceError(f"Page search failed on '{source_url}': {error}") from error

    # ─── Private ──────────────────────────────────────────────────────────────

    def _search_page(
        self,
        page,
        page_number: int,
        term_words: List[List[str]],
        context_radius: int,
    ) -> List[Anchor]:
        words: List[Word] = page.get_text("words")
        if not words:
            return []

        line_keys = []
        lines: Dict[Tuple[int, int], List[Word]] = {}
        for word in words:
            key = (word[5], word[6])
            if key not in lines:
                lines[key] = []
                line_keys.append(key)
            lines[key].append(word)

        normalized = [_normalize(w[4]) for w in words]
        matched_lines = {}
        for start in range(len(words)):
            for candidate in term_words:
                end = start + len(candidate)
                if end > len(words):
                    continue
                if all(normalized[start + i].startswith(candidate[i]) for i in range(len(candidate))):
                    key = (words[start][5], words[start][6])
                    matched_lines.setdefault(key, words[start:end])

        anchors = []
        for key in sorted(matched_lines, key=line_keys.index):
            line_position = line_keys.index(key)
            context = line_keys[max(0, line_position - context_radius) : line_position + context_radius + 1]
            snippet = " ".join(" ".join(w[4] for w in lines[k]) for k in context)
            anchors.append(Anchor(
                text=snippet,
                page_number=page_number,
                position=self._position(page, page_number, matched_lines[key]),
            ))
        return anchors

    @staticmethod
    def _position(page, page_number: int, matched: List[Word]) -> dict:
        """Scaled-position payload in the shape the PDF viewer consumes."""
        width, height = page.rect.width, page.rect.height
        rects = [
            {"x1": w[0], "y1": w[1], "x2": w[2], "y2": w[3], "width": width, "height": height}
            for w in matched
        ]
        bounding = {
            "x1": min(r["x1"] for r in rects),
            "y1": min(r["y1"] for r in rects),
            "x2": max(r["x2"] for r in rects),
            "y2": max(r["y2"] for r in rects),
            "width": width,
            "height": height,
        }
        return {"pageNumber": page_number, "boundingRect": bounding, "rects": rects}
