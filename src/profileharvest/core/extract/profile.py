"""
Profile detail extraction from embedded page data.

Profile pages carry their data in a script assignment of the form
``g.preLoad = '<json>'``. The JSON is an array of modules; the general
person info is the first record of the first module.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import urljoin

from lxml import html as lxml_html
from lxml.etree import ParserError

logger = logging.getLogger(__name__)

PRELOAD_MARKER = "g.preLoad"
ADDRESS_LINES = ("AddressLine1", "AddressLine2", "AddressLine3", "AddressLine4")

# Wait condition handed to the browser before the HTML is captured
PRELOAD_READY_JS = """
() => Array.from(document.querySelectorAll('script'))
    .some(s => s.textContent.includes('g.preLoad'))
"""


class ExtractionError(Exception):
    """The page did not contain the expected embedded data."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


@dataclass
class DetailRecord:
    """Detail fields recovered from one profile page."""

    first_name: str = ""
    last_name: str = ""
    display_name: str = ""
    title: str = ""
    department: str = ""
    institution: str = ""
    address: str = ""
    phone: str = ""
    fax: str = ""
    email: str = ""
    email_image_url: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def _read_quoted(segment: str) -> str | None:
    """Return the single-quoted literal after the first ``=`` in ``segment``."""
    eq = segment.find("=")
    if eq == -1:
        return None
    start = segment.find("'", eq)
    if start == -1:
        return None

    escaped = False
    for end in range(start + 1, len(segment)):
        ch = segment[end]
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == "'":
            return segment[start + 1:end]
    return None


def find_preload_json(scripts: list[str]) -> str | None:
    """Find the raw JSON text of the ``g.preLoad`` assignment."""
    for content in scripts:
        idx = content.find(PRELOAD_MARKER)
        if idx == -1:
            continue
        literal = _read_quoted(content[idx:])
        if literal is not None:
            return literal.replace("\\'", "'")
    return None


def parse_preload(raw: str, url: str | None = None) -> dict[str, Any]:
    """Decode the preload JSON and return the general-info record."""
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Failed to parse g.preLoad JSON: {e}", url=url) from e

    if not isinstance(parsed, list) or not parsed:
        raise ExtractionError("g.preLoad is not an array or is empty", url=url)

    first = parsed[0]
    module_data = first.get("ModuleData") if isinstance(first, dict) else None
    if not isinstance(module_data, list) or not module_data or not isinstance(module_data[0], dict):
        raise ExtractionError("No ModuleData found in g.preLoad", url=url)

    return module_data[0]


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _format_phone(value: Any) -> str:
    return _text(value).replace("/", "-")


def build_detail(profile: dict[str, Any]) -> DetailRecord:
    """Map a general-info record onto DetailRecord fields."""
    address = ", ".join(
        line for line in (_text(profile.get(key)) for key in ADDRESS_LINES) if line
    )

    affiliation: dict[str, Any] = {}
    affiliations = profile.get("Affiliation")
    if isinstance(affiliations, list) and affiliations and isinstance(affiliations[0], dict):
        affiliation = affiliations[0]

    return DetailRecord(
        first_name=_text(profile.get("FirstName")),
        last_name=_text(profile.get("LastName")),
        display_name=_text(profile.get("DisplayName")),
        title=_text(affiliation.get("Title")) or _text(profile.get("Title")),
        department=_text(affiliation.get("DepartmentName")) or _text(profile.get("Department")),
        institution=_text(affiliation.get("InstitutionName")) or _text(profile.get("Institution")),
        address=address,
        phone=_format_phone(profile.get("Phone")),
        fax=_format_phone(profile.get("Fax")),
        email=_text(profile.get("Email")),
    )


def find_email_image(doc: Any, page_url: str | None = None) -> str:
    """Absolute URL of the image that renders the contact email, or ''."""
    candidates = doc.xpath(
        '//img[contains(@src, "ShowEmail")]'
        ' | //img[contains(@alt, "email")]'
        ' | //img[contains(@alt, "Email")]'
    )
    # Prefer the ShowEmail image, then alt-text matches in document order
    candidates.sort(key=lambda img: "ShowEmail" not in (img.get("src") or ""))
    for img in candidates:
        src = (img.get("src") or "").strip()
        if src:
            return urljoin(page_url, src) if page_url else src
    return ""


def extract_profile_details(html: str, page_url: str | None = None) -> DetailRecord:
    """Extract detail fields from a rendered profile page.

    Raises:
        ExtractionError: If the embedded data is missing or malformed
    """
    if not html or not html.strip():
        raise ExtractionError("Empty page", url=page_url)

    try:
        doc = lxml_html.fromstring(html)
    except (ParserError, ValueError) as e:
        raise ExtractionError(f"Unparseable page: {e}", url=page_url) from e

    scripts = [script.text_content() for script in doc.xpath("//script")]
    raw = find_preload_json(scripts)
    if raw is None:
        raise ExtractionError("g.preLoad not found in any script tag", url=page_url)

    detail = build_detail(parse_preload(raw, url=page_url))
    detail.email_image_url = find_email_image(doc, page_url)

    logger.debug(f"Extracted profile details for {detail.display_name or page_url}")
    return detail
