import unittest

from reelproxy.models.candidate import ScoredCandidate
from reelproxy.models.media_item import MediaItem
from reelproxy.utils.m3u import M3UBuilder, extract_quality, sanitize, sanitize_description

from fakes import make_candidate


def library_item(item_id=603, title="The Matrix", candidate=True, **kwargs):
    item = MediaItem(
        id=item_id,
        title=title,
        year=1999,
        poster="https://image.tmdb.org/t/p/w500/poster.jpg",
        backdrop="https://image.tmdb.org/t/p/original/backdrop.jpg",
        description="A hacker learns the truth.",
        rating=8.2,
        vote_count=24000,
        popularity=83.6,
        genre_ids=[28, 878],
        **kwargs,
    )
    if candidate:
        item.candidate = ScoredCandidate(
            candidate=make_candidate(title="The Matrix 1999 1080p BluRay", seeders=300, verified=True),
            score=140.0,
        )
    return item


class TestHelpers(unittest.TestCase):
    def test_quality(self):
        self.assertEqual(extract_quality("Movie 2160p"), "4K")
        self.assertEqual(extract_quality("Movie 1080p"), "1080p")
        self.assertEqual(extract_quality("Movie 720p"), "720p")
        self.assertEqual(extract_quality("Movie DVDRip"), "SD")

    def test_sanitize(self):
        self.assertEqual(sanitize('Spider-Man: "Home"  (2019)'), "Spider-Man Home (2019)")
        self.assertEqual(sanitize(""), "")

    def test_description(self):
        self.assertEqual(sanitize_description(""), "No description available")
        long_text = "word " * 60
        out = sanitize_description(long_text)
        self.assertTrue(out.endswith("..."))
        self.assertLessEqual(len(out), 203)
        self.assertEqual(sanitize_description('He said "hi"\nthen left'), "He said 'hi' then left")


class TestM3UBuilder(unittest.TestCase):
    def setUp(self):
        self.builder = M3UBuilder("http://media.local:3000/", name="Movies")

    def test_playlist_layout(self):
        text = self.builder.build([library_item(), library_item(item_id=604, title="Reloaded")])
        lines = text.splitlines()

        self.assertEqual(lines[0], "#EXTM3U")
        self.assertEqual(lines[1], "#PLAYLIST:Movies")
        self.assertIn('tvg-chno="1000"', text)
        self.assertIn('tvg-chno="1001"', text)
        self.assertIn('group-title="Action"', text)
        self.assertIn("#EXTGENRE:Action|Sci-Fi", text)
        self.assertIn("#EXTQUALITY:1080p", text)
        self.assertIn("#EXTSEEDERS:300", text)
        self.assertIn("#EXTVERIFIED:Yes", text)
        self.assertIn("#EXTPOPULARITY:84", text)
        self.assertIn("http://media.local:3000/stream/603", lines)
        self.assertIn("http://media.local:3000/stream/604", lines)

    def test_items_without_candidate_are_skipped(self):
        text = self.builder.build([library_item(candidate=False)])
        self.assertNotIn("#EXTINF", text)
        self.assertTrue(text.startswith("#EXTM3U"))

    def test_json_playlist(self):
        payload = self.builder.build_json([library_item(candidate=False), library_item()])
        playlist = payload["playlist"]
        self.assertEqual(playlist["count"], 1)
        entry = playlist["items"][0]
        self.assertEqual(entry["streamUrl"], "http://media.local:3000/stream/603")
        self.assertEqual(entry["channelNumber"], 1000)
        self.assertEqual(entry["quality"], "1080p")
        self.assertEqual(entry["score"], 140.0)


if __name__ == "__main__":
    unittest.main()
