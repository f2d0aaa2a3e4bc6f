import json
import tempfile
import unittest
from pathlib import Path

from reelproxy.core.settings_manager import ConfigError, SettingsManager


class TestSettingsManager(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def make(self, environ=None):
        return SettingsManager(data_dir=str(self.data_dir), environ=environ or {})

    def test_defaults(self):
        settings = self.make()
        self.assertEqual(settings.get("min_seeders_required"), 5)
        self.assertEqual(settings.get("search_timeout_seconds"), 10.0)
        self.assertEqual(settings.get("session_idle_ttl_seconds"), 3600.0)
        self.assertEqual(settings.get("download_dir"), str(self.data_dir / "downloads"))
        self.assertFalse(settings.settings_file.exists())

    def test_environment_overrides_are_typed(self):
        settings = self.make({"MIN_SEEDERS_REQUIRED": "12", "PORT": "8080", "TMDB_API_KEY": " key "})
        self.assertEqual(settings.get("min_seeders_required"), 12)
        self.assertEqual(settings.get("port"), 8080)
        self.assertEqual(settings.get("tmdb_api_key"), "key")
        self.assertEqual(settings.public_view()["tmdb_api_key"], "***")

    def test_catalog_refreshes_on_startup_by_default(self):
        self.assertIs(self.make().get("refresh_on_startup"), True)

    def test_refresh_on_startup_override(self):
        self.assertIs(self.make({"REFRESH_ON_STARTUP": "false"}).get("refresh_on_startup"), False)
        self.assertIs(self.make({"REFRESH_ON_STARTUP": " Yes "}).get("refresh_on_startup"), True)
        self.assertIs(self.make({"REFRESH_ON_STARTUP": "0"}).get("refresh_on_startup"), False)
        with self.assertRaises(ConfigError) as ctx:
            self.make({"REFRESH_ON_STARTUP": "maybe"})
        self.assertIn("REFRESH_ON_STARTUP must be bool", str(ctx.exception))

    def test_bad_environment_values(self):
        with self.assertRaises(ConfigError):
            self.make({"PORT": "http"})
        with self.assertRaises(ConfigError):
            self.make({"SEARCH_TIMEOUT_SECONDS": "0"})
        with self.assertRaises(ConfigError):
            self.make({"MIN_SEEDERS_REQUIRED": "-1"})
        with self.assertRaises(ConfigError):
            self.make({"PORT": "70000"})

    def test_file_values_merge_with_defaults(self):
        (self.data_dir / "settings.json").write_text(json.dumps({
            "min_seeders_required": 9,
            "enabled_sources": {"LimeTorrents": False},
        }))
        settings = self.make()
        self.assertEqual(settings.get("min_seeders_required"), 9)
        self.assertEqual(
            settings.get("enabled_sources"),
            {"ThePirateBay": True, "LimeTorrents": False, "TorrentGalaxy": True},
        )

    def test_unreadable_file_falls_back_to_defaults(self):
        (self.data_dir / "settings.json").write_text("{not json")
        self.assertEqual(self.make().get("min_seeders_required"), 5)

    def test_environment_values_are_not_persisted(self):
        settings = self.make({"TMDB_API_KEY": "secret"})
        settings.set("refresh_max_items", 25)

        saved = json.loads(settings.settings_file.read_text())
        self.assertEqual(saved["refresh_max_items"], 25)
        self.assertNotIn("tmdb_api_key", saved)

    def test_update_is_validated(self):
        settings = self.make()
        with self.assertRaises(ConfigError):
            settings.update({"reaper_interval_seconds": 0})
        self.assertEqual(settings.get("reaper_interval_seconds"), 1800.0)

    def test_reset(self):
        settings = self.make()
        settings.set("min_seeders_required", 40)
        settings.reset()
        self.assertEqual(settings.get("min_seeders_required"), 5)


if __name__ == "__main__":
    unittest.main()
