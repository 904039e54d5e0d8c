"""
Tests for the public mirror list — XML parsing, filtering, fetching.
"""

from __future__ import annotations

import textwrap

import pytest

from chrootmanager.core.services.mirror_discovery import (
    MIRRORS_XML_URL,
    MirrorError,
    MirrorSite,
    MirrorUri,
    fetch_mirrors,
    filter_mirrors,
    parse_mirrors_xml,
    regions,
)

MIRRORS_XML = textwrap.dedent("""\
    <?xml version="1.0" encoding="UTF-8"?>
    <mirrors>
      <mirrorgroup region="Europe" country="FR" countryname="France">
        <mirror>
          <name>Example FR</name>
          <uri protocol="http" ipv4="y" ipv6="y" partial="n">http://fr.example/gentoo/</uri>
          <uri protocol="rsync" ipv4="y" ipv6="n" partial="n">rsync://fr.example/gentoo/</uri>
        </mirror>
        <mirror>
          <name>Empty</name>
        </mirror>
      </mirrorgroup>
      <mirrorgroup region="North America" country="CA" countryname="Canada">
        <mirror>
          <uri protocol="https" ipv4="y" ipv6="n" partial="y">https://ca.example/gentoo/</uri>
        </mirror>
        <mirror>
          <name>Gopher</name>
          <uri protocol="gopher">gopher://ca.example/</uri>
        </mirror>
      </mirrorgroup>
    </mirrors>
""").encode()


@pytest.fixture
def sites() -> list[MirrorSite]:
    return parse_mirrors_xml(MIRRORS_XML)


class TestParseMirrorsXml:
    def test_sites_and_groups(self, sites):
        assert [s.name for s in sites] == [
            "Example FR", "https://ca.example/gentoo/", "Gopher",
        ]
        fr = sites[0]
        assert (fr.region, fr.country_code, fr.country_name) == ("Europe", "FR", "France")
        assert fr.uris[0] == MirrorUri(
            uri="http://fr.example/gentoo/", protocol="http", ipv4=True, ipv6=True, partial=False,
        )

    def test_unnamed_mirror_uses_first_uri(self, sites):
        assert sites[1].uris[0].partial is True
        assert sites[1].country_name == "Canada"

    def test_unknown_protocol(self, sites):
        assert sites[2].uris[0].protocol == "unknown"

    def test_to_dict(self, sites):
        data = sites[0].to_dict()
        assert data["country_code"] == "FR"
        assert data["uris"][1]["protocol"] == "rsync"

    @pytest.mark.parametrize("data", [b"", b"   \n", ""])
    def test_empty(self, data):
        with pytest.raises(MirrorError, match="Empty"):
            parse_mirrors_xml(data)

    @pytest.mark.parametrize("xml, message", [
        ("<mirrorgroup region='x'/>", "without <mirrors> root"),
        ("<mirrors><mirror><name>x</name></mirror></mirrors>", "mirror outside"),
        ("<mirrors><mirrorgroup><uri>http://x/</uri></mirrorgroup></mirrors>", "uri outside"),
        ("<mirrors><uri>http://x/</uri></mirrors>", "uri outside"),
        ("<html/>", "expected <mirrors> root"),
        ("<mirrors><mirrorgroup>", "Invalid mirror list"),
    ])
    def test_invalid_structure(self, xml, message):
        with pytest.raises(MirrorError, match=message):
            parse_mirrors_xml(xml)


class TestFilterMirrors:
    def test_region_case_insensitive(self, sites):
        assert [s.name for s in filter_mirrors(sites, region="europe")] == ["Example FR"]

    def test_country_by_code_or_name(self, sites):
        assert len(filter_mirrors(sites, country="ca")) == 2
        assert len(filter_mirrors(sites, country="Canada")) == 2
        assert filter_mirrors(sites, country="DE") == []

    def test_protocol_narrows_uris(self, sites):
        result = filter_mirrors(sites, protocol="rsync")
        assert [s.name for s in result] == ["Example FR"]
        assert [u.protocol for u in result[0].uris] == ["rsync"]
        assert len(sites[0].uris) == 2

    def test_no_filters(self, sites):
        assert filter_mirrors(sites) == sites

    def test_regions(self, sites):
        assert regions(sites) == ["Europe", "North America"]


class TestFetchMirrors:
    def test_fetches_official_list(self, mirror):
        mirror[MIRRORS_XML_URL] = MIRRORS_XML
        assert len(fetch_mirrors()) == 3
        assert mirror.requested == [MIRRORS_XML_URL]

    def test_unreachable(self, mirror):
        with pytest.raises(MirrorError, match="Cannot fetch mirror list"):
            fetch_mirrors()
