"""Amazon Linux security advisories from RSS feeds and advisory pages."""

from __future__ import annotations

import gzip
import logging
import re
import urllib.request
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from html.parser import HTMLParser

from .debug import debug_vuln
from .models import (
    CVE,
    CVE_SOURCE_ROOT,
    CouldNotDownloadError,
    CouldNotParseError,
    Feature,
    FeatureVersion,
    Priority,
    Vulnerability,
)
from .registry import Fetcher, FetcherResponse, NetInterface
from .version import InvalidVersionError, Version

logger = logging.getLogger(__name__)

MIN_COUNT = 1000


@dataclass(frozen=True)
class OvalInfo:
    filename: str
    feed: str
    version: int


OVALS = (
    OvalInfo("amazon/alas.rss.gz", "Amazon Linux", 1),
    OvalInfo("amazon/alas2.rss.gz", "Amazon Linux 2", 2),
    OvalInfo("amazon/alas2023.rss.gz", "Amazon Linux 2023", 2023),
)

_RATINGS = {
    "(critical):": ("Critical", Priority.CRITICAL),
    "(important):": ("Important", Priority.HIGH),
    "(medium):": ("Medium", Priority.MEDIUM),
}

_VERSION_START_RE = re.compile(r"[a-z+]-[0-9]")
_ALT_VERSION_START_RE = re.compile(r"[0-9]-[0-9]")

_BLOCK_TAGS = frozenset(
    {"p", "div", "li", "ul", "ol", "tr", "table", "section", "hr", "pre",
     "h1", "h2", "h3", "h4", "h5", "h6", "nav", "main", "body"}
)
_SKIP_TAGS = frozenset({"script", "style", "head"})


class _TextExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self.skip = 0

    def handle_starttag(self, tag, attrs):
        if tag in _SKIP_TAGS:
            self.skip += 1
        elif tag == "br" or tag in _BLOCK_TAGS:
            self.parts.append("\n")

    def handle_startendtag(self, tag, attrs):
        if tag == "br" or tag in _BLOCK_TAGS:
            self.parts.append("\n")

    def handle_endtag(self, tag):
        if tag in _SKIP_TAGS:
            self.skip = max(self.skip - 1, 0)
        elif tag in _BLOCK_TAGS:
            self.parts.append("\n")

    def handle_data(self, data):
        if not self.skip:
            self.parts.append(re.sub(r"\s+", " ", data.replace("\xa0", " ")))


def html_to_text(html: str) -> str:
    """Render HTML as plain text, one line per block or line break."""
    parser = _TextExtractor()
    parser.feed(html)
    parser.close()
    lines = [line.strip() for line in "".join(parser.parts).split("\n")]
    out: list[str] = []
    for line in lines:
        if line or (out and out[-1]):
            out.append(line)
    return "\n".join(out).strip()


class HttpNet(NetInterface):
    """Downloads pages over HTTP."""

    def __init__(self, timeout: float = 20.0) -> None:
        self.timeout = timeout

    def download_html_page(self, url: str) -> tuple[str, str]:
        with urllib.request.urlopen(url, timeout=self.timeout) as response:
            body = response.read().decode("utf-8", errors="replace")
        return body, html_to_text(body)


def parse_alas_page(name: str, body: str, plain: str) -> tuple[str, dict[str, str]]:
    """Return the issue description and the fixed version of each new package."""
    description = ""
    a = plain.find("Issue Overview:")
    if a > 0:
        b = plain.find("Affected Packages:")
        if b > 0:
            description = plain[a + 15 : b].strip()

    versions: dict[str, str] = {}
    a = body.find("New Packages:</b><pre>")
    if a > 0:
        text = body[a + 22 :]
        end = text.find("</pre>")
        if end > 0:
            text = text[:end]
        text = text.replace("<br />", " ").replace("&nbsp;", " ")
        for item in text.split(" "):
            item = item.strip()
            if not item or item.endswith(":"):
                continue
            starts = [m.start() for m in _VERSION_START_RE.finditer(item)]
            if starts:
                start = starts[-1]
            else:
                starts = [m.start() for m in _ALT_VERSION_START_RE.finditer(item)]
                if not starts:
                    logger.warning(
                        "Failed to find version start index for ALAS page",
                        extra={"fields": {"name": name, "str": item}},
                    )
                    continue
                start = starts[0]
            last_dot = item.rfind(".")
            if last_dot < start + 2:
                logger.warning(
                    "Failed to find version end for ALAS page",
                    extra={"fields": {"name": name, "str": item}},
                )
                continue
            versions[item[: start + 1]] = item[start + 2 : last_dot]
    return description, versions


def get_alas(name: str, link: str, net: NetInterface) -> tuple[str, dict[str, str]]:
    """Download an advisory page and parse it."""
    body, plain = net.download_html_page(link)
    return parse_alas_page(name, body, plain)


def _element_text(parent: ET.Element, tag: str) -> str:
    element = parent.find(tag)
    return "".join(element.itertext()) if element is not None else ""


def _parse_date(text: str) -> datetime | None:
    if not text.strip():
        return None
    try:
        return parsedate_to_datetime(text.strip())
    except (TypeError, ValueError, IndexError):
        return None


class AmazonFetcher(Fetcher):
    """Reads the Amazon Linux advisory feeds found under a source root."""

    def __init__(self, root: str = CVE_SOURCE_ROOT) -> None:
        self.root = root

    def fetch_update(self) -> FetcherResponse:
        logger.info("fetching Amazon vulnerabilities", extra={"fields": {"package": "Amazon"}})
        net = HttpNet()
        response = FetcherResponse()
        for oval in OVALS:
            try:
                response.vulnerabilities.extend(self.fetch_oval_feed(oval, net))
            except (CouldNotDownloadError, CouldNotParseError):
                continue
        count = len(response.vulnerabilities)
        if count < MIN_COUNT:
            logger.error(
                "Amazon CVE count too small",
                extra={"fields": {"count": count, "min": MIN_COUNT}},
            )
            raise CouldNotParseError(f"Amazon CVE count too small, {count} < {MIN_COUNT}")
        logger.info("fetching amazon done", extra={"fields": {"Vulnerabilities": count}})
        return response

    def fetch_oval_feed(self, oval: OvalInfo, net: NetInterface) -> list[Vulnerability]:
        """Parse one gzip RSS feed, reading each advisory page for its packages."""
        logger.info("fetching Amazon oval feed", extra={"fields": {"file": oval.filename}})
        path = self.root + oval.filename
        try:
            with gzip.open(path, "rb") as stream:
                data = stream.read()
        except FileNotFoundError as exc:
            logger.error("Failed to open the feed file", extra={"fields": {"file": oval.filename}})
            raise CouldNotDownloadError("Unable to fetch the oval feed") from exc
        except (OSError, EOFError) as exc:
            logger.error("Failed to create feed reader", extra={"fields": {"file": oval.filename}})
            raise CouldNotParseError("Unable to fetch the oval feed") from exc
        try:
            root = ET.fromstring(data)
        except ET.ParseError as exc:
            logger.error(
                "Failed to decode XML", extra={"fields": {"file": oval.filename, "error": exc}}
            )
            raise CouldNotParseError() from exc

        channel = root.find("channel")
        items = channel.findall("item") if channel is not None else []
        vulns: list[Vulnerability] = []
        for item in items:
            vul = self._parse_item(item, oval, net)
            if vul is not None:
                vulns.append(vul)
        return vulns

    def _parse_item(
        self, item: ET.Element, oval: OvalInfo, net: NetInterface
    ) -> Vulnerability | None:
        title = _element_text(item, "title")
        tokens = title.split(" ")
        if len(tokens) < 3:
            logger.error("Failed to parse rss item title", extra={"fields": {"title": title}})
            return None
        rating = _RATINGS.get(tokens[1].lower())
        if rating is None:
            return None

        vul = Vulnerability(name=tokens[0], link=_element_text(item, "link"))
        vul.feed_rating, vul.severity = rating
        vul.cves = [
            CVE(name=name)
            for name in (part.rstrip(",\n ") for part in _element_text(item, "description").split(" "))
            if name
        ]
        issued = _parse_date(_element_text(item, "pubData"))
        last_mod = _parse_date(_element_text(item, "lastBuildDate"))
        vul.issued_date = issued if issued is not None else last_mod
        vul.last_mod_date = last_mod if last_mod is not None else vul.issued_date

        try:
            description, versions = get_alas(vul.name, vul.link, net)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Failed to parse amazon CVE page",
                extra={"fields": {"cve": vul.name, "error": exc}},
            )
            return None
        if not versions:
            logger.warning(
                "Failed to parse amazon CVE page, no package versions",
                extra={"fields": {"cve": vul.name}},
            )
            return None

        vul.description = description.strip()
        for package, text in versions.items():
            try:
                version = Version.parse(text)
            except InvalidVersionError as exc:
                logger.error(
                    "invalid version",
                    extra={"fields": {"err": exc, "version": text, "name": vul.name}},
                )
                continue
            vul.fixed_in.append(
                FeatureVersion(
                    feature=Feature(name=package, namespace=f"amzn:{oval.version}"),
                    version=version,
                )
            )
        debug_vuln(vul, "amazon")
        return vul

    def clean(self) -> None:
        """Nothing is left behind by a fetch."""