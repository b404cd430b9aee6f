"""Best-effort parser for free-text answers from the generative search backend.

The backend returns prose or markdown lists, not structured records. This
module splits the answer into per-paper blocks and pulls out whatever it
can recognize (title, authors, venue, year, DOI, arXiv id, URL). Output is
inherently noisy and is converted to low-confidence candidates by the
trend provider; swapping in a structured-output API only requires a new
``parse`` implementation.
"""

import re
from typing import List, Optional

from pydantic import BaseModel, Field

from src.utils.author_utils import normalize_authors

DOI_PATTERN = re.compile(r"10\.\d{4,9}/[\w\-._;()/:\[\]]+", re.IGNORECASE)
ARXIV_PATTERN = re.compile(r"arXiv[:\s]*(\d{4}\.\d{4,5})(v\d+)?", re.IGNORECASE)
ARXIV_URL_PATTERN = re.compile(r"arxiv\.org/(?:abs|pdf)/(\d{4}\.\d{4,5})", re.IGNORECASE)
YEAR_PATTERN = re.compile(r"\b(19\d{2}|20\d{2})\b")
URL_PATTERN = re.compile(r"https?://[\w\-._~:/?#\[\]@!$&'*+,;=%]+", re.IGNORECASE)
PMID_PATTERN = re.compile(r"PMID:\s*(\d+)", re.IGNORECASE)
VENUE_PATTERN = re.compile(
    r"(?:(?:published in|appeared in|in proceedings of)\s*:?|"
    r"(?:journal|venue|conference)\**\s*:)\s*\**\s*([^,\n;(*]+)",
    re.IGNORECASE,
)
AUTHORS_PATTERN = re.compile(r"(?:authors?:|\bby\b)\s*\**\s*([^\n(]+)", re.IGNORECASE)

_ENTRY_START = re.compile(r"^\s*(?:\d+[.)]|[-*•]|#{1,4})\s+")
_TITLE_LABEL = re.compile(r"^\s*\**\s*title\s*:\s*", re.IGNORECASE)
_FIELD_LABEL = re.compile(
    r"^\s*(?:[-*•]\s+)?\**\s*(?:authors?|doi|url|link|venue|journal|published|"
    r"publication|year|date|description|summary|why|relevance|access|source|pdf|"
    r"arxiv|pmid)\b[^:]{0,20}:",
    re.IGNORECASE,
)
_MARKDOWN = re.compile(r"[*_`]+")
_TRAILING_PUNCT = ".,;:)]}>\"'"


class TrendEntry(BaseModel):
    """One paper recognized in a free-text answer"""

    title: str
    authors: List[str] = Field(default_factory=list)
    venue: Optional[str] = None
    year: Optional[int] = None
    doi: Optional[str] = None
    arxiv_id: Optional[str] = None
    pmid: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None

    @property
    def field_count(self) -> int:
        return sum(
            1
            for value in (self.authors, self.venue, self.year, self.doi, self.url)
            if value
        )


def clean_doi(doi: Optional[str]) -> Optional[str]:
    if not doi:
        return None
    doi = re.sub(r"^(?:doi:\s*|https?://(?:dx\.)?doi\.org/)", "", doi.strip(), flags=re.I)
    return doi.rstrip(_TRAILING_PUNCT) or None


def clean_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    return url.rstrip(_TRAILING_PUNCT) or None


def _strip_markdown(text: str) -> str:
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    return _MARKDOWN.sub("", text).strip()


class TrendResponseParser:
    """Splits an answer into paper blocks and extracts their fields"""

    MIN_TITLE_LENGTH = 8

    def parse(self, text: Optional[str]) -> List[TrendEntry]:
        if not text or not text.strip():
            return []
        entries = []
        for block in self._split_blocks(text):
            entry = self._parse_block(block)
            if entry is not None:
                entries.append(entry)
        return entries

    def _split_blocks(self, text: str) -> List[List[str]]:
        blocks: List[List[str]] = []
        current: Optional[List[str]] = None
        for raw in text.splitlines():
            line = raw.rstrip()
            if not line.strip():
                continue
            if self._starts_entry(line):
                current = [line]
                blocks.append(current)
            elif current is not None:
                current.append(line)
        return blocks

    def _starts_entry(self, line: str) -> bool:
        if _TITLE_LABEL.match(_ENTRY_START.sub("", line)):
            return True
        if _FIELD_LABEL.match(line):
            return False
        # Indented bullets are details of the enclosing entry
        if line[:1].isspace() and not re.match(r"^\s*\d+[.)]\s", line):
            return False
        return bool(_ENTRY_START.match(line))

    def _parse_block(self, lines: List[str]) -> Optional[TrendEntry]:
        header = _ENTRY_START.sub("", lines[0])
        header = _TITLE_LABEL.sub("", header)
        title = self._extract_title(header)
        if not title or len(title) < self.MIN_TITLE_LENGTH:
            return None

        body = "\n".join(lines)
        # Whatever follows the title on the header line counts as detail text
        header_rest = _strip_markdown(header).replace(title, "", 1)
        details = "\n".join([header_rest] + lines[1:])

        authors = None
        match = AUTHORS_PATTERN.search(details)
        if match:
            authors = _strip_markdown(match.group(1)).rstrip(_TRAILING_PUNCT)

        venue = None
        match = VENUE_PATTERN.search(details)
        if match:
            venue = _strip_markdown(match.group(1)).rstrip(_TRAILING_PUNCT) or None

        doi_match = DOI_PATTERN.search(body)
        arxiv_match = ARXIV_PATTERN.search(body) or ARXIV_URL_PATTERN.search(body)
        url_match = URL_PATTERN.search(body)
        pmid_match = PMID_PATTERN.search(body)
        year_text = details.replace(doi_match.group(), "") if doi_match else details
        year_match = YEAR_PATTERN.search(URL_PATTERN.sub("", year_text))

        description = None
        for line in lines[1:]:
            stripped = _strip_markdown(_ENTRY_START.sub("", line))
            if len(stripped) > 40 and not _FIELD_LABEL.match(line) and not URL_PATTERN.search(stripped):
                description = stripped
                break

        return TrendEntry(
            title=title,
            authors=normalize_authors(authors) if authors else [],
            venue=venue,
            year=int(year_match.group(1)) if year_match else None,
            doi=clean_doi(doi_match.group()) if doi_match else None,
            arxiv_id=arxiv_match.group(1) if arxiv_match else None,
            pmid=pmid_match.group(1) if pmid_match else None,
            url=clean_url(url_match.group()) if url_match else None,
            description=description,
        )

    def _extract_title(self, header: str) -> Optional[str]:
        bold = re.search(r"\*\*(.+?)\*\*", header)
        if bold:
            candidate = bold.group(1)
        else:
            candidate = header
            for separator in (" by ", " - ", " – ", " (", " doi", " http"):
                position = candidate.lower().find(separator)
                if position > 0:
                    candidate = candidate[:position]
        candidate = _strip_markdown(candidate)
        candidate = _TITLE_LABEL.sub("", candidate)
        candidate = candidate.strip().strip("\"'“”").rstrip(".,:;").strip()
        return candidate or None
