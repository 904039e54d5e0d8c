"""
Mirror discovery — the public Gentoo distfiles mirror list.

Gentoo publishes its mirrors as XML::

    <mirrors>
      <mirrorgroup region="Europe" country="FR" countryname="France">
        <mirror>
          <name>Example</name>
          <uri protocol="https" ipv4="y" ipv6="n" partial="n">https://…/</uri>
        </mirror>
      </mirrorgroup>
    </mirrors>

``parse_mirrors_xml`` turns that into ``MirrorSite`` records, which the
``mirror available`` command filters by region, country and protocol.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass, field, replace
from typing import Iterable

from chrootmanager.core.services.stage3_download import DownloadError, fetch_bytes

logger = logging.getLogger(__name__)

MIRRORS_XML_URL = "https://api.gentoo.org/mirrors/distfiles.xml"

PROTOCOLS = ("http", "https", "ftp", "rsync")


class MirrorError(Exception):
    """Raised when the mirror list cannot be fetched or understood."""


@dataclass(frozen=True)
class MirrorUri:
    uri: str
    protocol: str = "unknown"
    ipv4: bool = False
    ipv6: bool = False
    partial: bool = False


@dataclass(frozen=True)
class MirrorSite:
    name: str
    region: str = ""
    country_code: str = ""
    country_name: str = ""
    uris: tuple[MirrorUri, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return asdict(self)


def _protocol(value: str | None) -> str:
    value = (value or "").strip().lower()
    return value if value in PROTOCOLS else "unknown"


def _flag(element: ET.Element, name: str) -> bool:
    return element.get(name, "").strip().lower() == "y"


def _parse_mirror(element: ET.Element, group: ET.Element) -> MirrorSite | None:
    name = ""
    uris: list[MirrorUri] = []
    for child in element:
        if child.tag == "name":
            name = (child.text or "").strip()
        elif child.tag == "uri":
            text = (child.text or "").strip()
            if not text:
                continue
            uris.append(MirrorUri(
                uri=text,
                protocol=_protocol(child.get("protocol")),
                ipv4=_flag(child, "ipv4"),
                ipv6=_flag(child, "ipv6"),
                partial=_flag(child, "partial"),
            ))

    if not uris:
        logger.warning("Mirror ignored because it has no URI: %s", name or "<unnamed>")
        return None
    if not name:
        name = uris[0].uri
        logger.debug("Missing mirror name, using URI: %s", name)

    return MirrorSite(
        name=name,
        region=group.get("region", ""),
        country_code=group.get("country", ""),
        country_name=group.get("countryname", ""),
        uris=tuple(uris),
    )


def parse_mirrors_xml(data: bytes | str) -> list[MirrorSite]:
    """Parse the distfiles mirror list.

    Mirrors without any URI are skipped; a mirror without a name is
    named after its first URI.

    Raises:
        MirrorError: empty input, malformed XML, or elements outside
            the ``mirrors > mirrorgroup > mirror > uri`` nesting.
    """
    if not data or not data.strip():
        raise MirrorError("Empty data received")

    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise MirrorError(f"Invalid mirror list: {e}") from e

    if root.tag != "mirrors":
        if root.tag == "mirrorgroup":
            raise MirrorError("Invalid format: mirrorgroup without <mirrors> root")
        raise MirrorError(f"Invalid format: expected <mirrors> root, got <{root.tag}>")

    sites: list[MirrorSite] = []
    for group in root:
        if group.tag == "mirror":
            raise MirrorError("Invalid format: mirror outside a mirrorgroup")
        if group.tag == "uri":
            raise MirrorError("Invalid format: uri outside a mirror")
        if group.tag != "mirrorgroup":
            continue

        for element in group:
            if element.tag == "uri":
                raise MirrorError("Invalid format: uri outside a mirror")
            if element.tag != "mirror":
                continue
            site = _parse_mirror(element, group)
            if site is not None:
                sites.append(site)

    logger.debug("Parsed %d mirrors", len(sites))
    return sites


def fetch_mirrors(url: str = MIRRORS_XML_URL) -> list[MirrorSite]:
    """Download and parse the public mirror list."""
    logger.info("Fetching mirror list from %s", url)
    try:
        data = fetch_bytes([url])
    except DownloadError as e:
        raise MirrorError(f"Cannot fetch mirror list: {e}") from e
    return parse_mirrors_xml(data)


def filter_mirrors(
    sites: Iterable[MirrorSite],
    region: str | None = None,
    country: str | None = None,
    protocol: str | None = None,
) -> list[MirrorSite]:
    """Narrow ``sites`` down; all matches are case-insensitive.

    ``country`` matches either the ISO code or the country name.  With a
    ``protocol``, each site keeps only its URIs of that protocol and
    sites left without any are dropped.
    """
    result = []
    for site in sites:
        if region and site.region.lower() != region.lower():
            continue
        if country and country.lower() not in (
            site.country_code.lower(),
            site.country_name.lower(),
        ):
            continue
        if protocol:
            uris = tuple(u for u in site.uris if u.protocol == protocol.lower())
            if not uris:
                continue
            site = replace(site, uris=uris)
        result.append(site)
    return result


def regions(sites: Iterable[MirrorSite]) -> list[str]:
    return sorted({s.region for s in sites if s.region})
