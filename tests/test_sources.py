import unittest
from unittest.mock import patch

import requests

from reelproxy.sources import LimeTorrentsSource, PirateBaySource, TorrentGalaxySource, default_sources
from reelproxy.sources.base import SourceError

HASH_A = "A" * 40
HASH_B = "B" * 40


class FakeResponse:
    def __init__(self, text="", status_code=200, payload=None):
        self.content = text.encode("utf-8")
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


PIRATEBAY_PAGE = f"""
<html><body><table id="searchResult">
<tr><th>Type</th><th>Name</th><th>SE</th><th>LE</th></tr>
<tr>
  <td class="vertTh">Video</td>
  <td>
    <div class="detName"><a href="/torrent/1">Movie 2020 1080p x265</a></div>
    <a href="magnet:?xt=urn:btih:{HASH_A}&dn=movie">magnet</a>
    <img title="VIP" src="vip.gif"/>
    <font class="detDesc">Uploaded 03-15 2021, Size 1.5 GiB, ULed by someone</font>
  </td>
  <td>120</td><td>7</td>
</tr>
<tr>
  <td class="vertTh">Video</td>
  <td>
    <div class="detName"><a href="/torrent/2">Movie 2020 CAM</a></div>
    <a href="magnet:?xt=urn:btih:{HASH_B}&dn=cam">magnet</a>
    <font class="detDesc">Uploaded 03-15 2021, Size 700 MiB, ULed by anon</font>
  </td>
  <td>0</td><td>3</td>
</tr>
</table></body></html>
"""

LIME_PAGE = f"""
<html><body><table class="table2">
<tr><th>Name</th><th>Added</th><th>Size</th><th>Seed</th><th>Leech</th></tr>
<tr>
  <td><a href="magnet:?xt=urn:btih:{HASH_A}">m</a><a href="/Movie-2020-torrent-1.html">Movie 2020 720p</a></td>
  <td>2 days ago</td><td>2.1 GB</td><td>1,204</td><td>88</td>
</tr>
<tr><td>broken row</td></tr>
</table></body></html>
"""

GALAXY_PAGE = f"""
<html><body>
<div class="tgxtablerow">
  <div class="tgxtablecell txlight"><a href="/torrent/9">Movie 2020 2160p HDR</a><img alt="VIP uploader" src="v.png"/></div>
  <div class="tgxtablecell"><a href="magnet:?xt=urn:btih:{HASH_B}">dl</a></div>
  <div class="tgxtablecell txlight">Movies</div>
  <div class="tgxtablecell txlight">uploader</div>
  <div class="tgxtablecell txlight">12.4 GB</div>
  <div class="tgxtablecell txlight">75</div>
  <div class="tgxtablecell txlight">12</div>
</div>
</body></html>
"""


class TestPirateBaySource(unittest.TestCase):
    def test_parses_rows_and_drops_unseeded(self):
        source = PirateBaySource()
        with patch.object(source.session, "get", return_value=FakeResponse(PIRATEBAY_PAGE)) as get:
            results = source.search("Movie 2020")

        self.assertIn("/search/Movie%202020/1/99/200", get.call_args[0][0])
        self.assertEqual(len(results), 1)
        first = results[0]
        self.assertEqual(first.title, "Movie 2020 1080p x265")
        self.assertEqual(first.seeders, 120)
        self.assertEqual(first.leechers, 7)
        self.assertEqual(first.size_bytes, int(1.5 * 1024 ** 3))
        self.assertTrue(first.verified)
        self.assertEqual(first.info_hash, HASH_A.lower())
        self.assertEqual(first.source_name, "ThePirateBay")

    def test_falls_back_to_api_when_page_is_unreachable(self):
        source = PirateBaySource()
        api_rows = [{
            "name": "Movie 2020 1080p",
            "info_hash": HASH_B,
            "seeders": "40",
            "leechers": "2",
            "size": str(2 * 1024 ** 3),
            "added": "1700000000",
            "status": "trusted",
        }]

        def fake_get(url, **kwargs):
            if "apibay" in url:
                return FakeResponse(payload=api_rows)
            raise requests.ConnectionError("blocked")

        with patch.object(source.session, "get", side_effect=fake_get):
            results = source.search("Movie 2020")

        self.assertEqual(len(results), 1)
        self.assertTrue(results[0].verified)
        self.assertIsNotNone(results[0].upload_date)
        self.assertTrue(results[0].locator.startswith(f"magnet:?xt=urn:btih:{HASH_B}"))

    def test_api_placeholder_row_means_no_results(self):
        source = PirateBaySource()
        placeholder = [{"name": "No results returned", "info_hash": "0" * 40, "seeders": "0"}]

        def fake_get(url, **kwargs):
            if "apibay" in url:
                return FakeResponse(payload=placeholder)
            return FakeResponse("<html><body>nothing</body></html>")

        with patch.object(source.session, "get", side_effect=fake_get):
            self.assertEqual(source.search("nothing here"), [])

    def test_raises_when_everything_fails(self):
        source = PirateBaySource()
        with patch.object(source.session, "get", side_effect=requests.Timeout("slow")):
            with self.assertRaises(SourceError):
                source.search("Movie")
        self.assertFalse(source.healthcheck()["ok"])


class TestLimeTorrentsSource(unittest.TestCase):
    def test_parses_table(self):
        source = LimeTorrentsSource()
        with patch.object(source.session, "get", return_value=FakeResponse(LIME_PAGE)):
            results = source.search("Movie 2020")

        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].title, "Movie 2020 720p")
        self.assertEqual(results[0].seeders, 1204)
        self.assertEqual(results[0].leechers, 88)
        self.assertEqual(results[0].size_bytes, int(2.1 * 1024 ** 3))
        self.assertFalse(results[0].verified)

    def test_http_error_becomes_source_error(self):
        source = LimeTorrentsSource()
        with patch.object(source.session, "get", return_value=FakeResponse("", status_code=503)):
            with self.assertRaises(SourceError):
                source.search("Movie")


class TestTorrentGalaxySource(unittest.TestCase):
    def test_parses_rows(self):
        source = TorrentGalaxySource()
        with patch.object(source.session, "get", return_value=FakeResponse(GALAXY_PAGE)):
            results = source.search("Movie 2020")

        self.assertEqual(len(results), 1)
        row = results[0]
        self.assertEqual(row.title, "Movie 2020 2160p HDR")
        self.assertEqual(row.seeders, 75)
        self.assertEqual(row.leechers, 12)
        self.assertEqual(row.size_bytes, int(12.4 * 1024 ** 3))
        self.assertTrue(row.verified)


class TestSourceSettings(unittest.TestCase):
    def test_mirror_and_timeout_overrides(self):
        settings = {
            "source_request_timeout_seconds": 3,
            "source_base_urls": {"LimeTorrents": "https://lime.example/"},
        }
        sources = {s.name: s for s in default_sources(settings)}
        self.assertEqual(list(sources), ["ThePirateBay", "LimeTorrents", "TorrentGalaxy"])
        self.assertEqual(sources["LimeTorrents"].base_url, "https://lime.example")
        self.assertEqual(sources["TorrentGalaxy"].request_timeout, 3.0)


if __name__ == "__main__":
    unittest.main()
