"""Removal of CMS chrome (CivicEngage/CivicPlus) from crawled markdown."""

import re
from typing import Iterable, List, Pattern, Tuple

_BOILERPLATE_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    ("loading-img", re.compile(r"!\[Loading\]\([^)]*\)")),
    ("loading-text", re.compile(r"^Loading$", re.MULTILINE)),
    ("skip-nav", re.compile(r"\[Skip to Main Content\]\([^)]*\)")),
    ("banner-img", re.compile(r"!\[\]\(https?://[^)\s]*/ImageRepository/[^)]*\)")),
    ("modal-close", re.compile(r"Do Not Show AgainClose")),
    ("font-probe", re.compile(r"(?:BESbswy){2,}")),
    (
        "translate-picker",
        re.compile(r"Select Language\s*(?:Abkhaz|Acehnese)[\s\S]*?(?:Zulu|Zapotec)\b"),
    ),
    (
        "translate-fragment",
        re.compile(
            r"^[a-zA-Z]+(?:ese|ian|ish|ala|ulu|tic|ari|aze)\b(?:[A-Z][a-z]+){5,}",
            re.MULTILINE,
        ),
    ),
    ("translate-badge", re.compile(r"Powered by \[!\[Google Translate\][^\]]*\]\([^)]*\)\s*")),
    ("carousel-arrows", re.compile(r"Arrow LeftArrow Right")),
    ("slideshow-ctrl", re.compile(r"Slideshow Left Arrow[\s\S]*?Slideshow Right Arrow")),
    ("newsletter-cta", re.compile(r"Sign Up for the Town's Weekly e-Newsletter")),
    ("close-btn", re.compile(r"^Close \*\*×\*\*$", re.MULTILINE)),
    ("empty-img", re.compile(r"!\[\]\([^)]*\)")),
    ("civic-footer", re.compile(r"Government Websites by CivicPlus®?")),
    ("civic-powered", re.compile(r"\[Powered by.*?CivicPlus.*?\]\([^)]*\)")),
    ("multi-loading", re.compile(r"(?:Loading\s*\n\s*){2,}")),
]

_BLANK_RUNS = re.compile(r"\n{3,}")


def _breadcrumb_pattern(host: str) -> Pattern[str]:
    # numbered list in which every item is a link back into the site itself
    h = re.escape(host)
    return re.compile(
        rf"^(?:\d+\.\s*\[[^\]]*\]\(https?://(?:www\.)?{h}/[^)]*\)\n?)+", re.MULTILINE
    )


def strip_boilerplate(markdown: str, site_hosts: Iterable[str] = ()) -> str:
    """
    Strip CMS navigation, widgets and footers, keeping the page content.

    Args:
        markdown: Crawled page text
        site_hosts: Hostnames whose self-links form breadcrumb trails
    """
    cleaned = markdown or ""
    for _label, pattern in _BOILERPLATE_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    for host in site_hosts:
        cleaned = _breadcrumb_pattern(host).sub("", cleaned)
    cleaned = _BLANK_RUNS.sub("\n\n", cleaned)
    return cleaned.strip()
