import logging
import unittest

from reelproxy.core.logging_config import get_uvicorn_log_config, normalize_level


class TestLoggingConfig(unittest.TestCase):
    def test_normalize_level(self):
        self.assertEqual(normalize_level("debug"), logging.DEBUG)
        self.assertEqual(normalize_level(" WARNING "), logging.WARNING)
        self.assertEqual(normalize_level(logging.ERROR), logging.ERROR)
        self.assertEqual(normalize_level("chatty"), logging.INFO)
        self.assertEqual(normalize_level(None), logging.INFO)

    def test_uvicorn_config_covers_app_loggers(self):
        config = get_uvicorn_log_config("warning")
        self.assertEqual(config["version"], 1)
        self.assertFalse(config["disable_existing_loggers"])
        self.assertEqual(config["loggers"]["reelproxy"]["level"], logging.WARNING)
        self.assertEqual(config["loggers"]["uvicorn.access"]["handlers"], ["access"])
        self.assertEqual(config["root"]["level"], logging.WARNING)

    def test_each_record_has_one_handler_path(self):
        loggers = get_uvicorn_log_config()["loggers"]
        self.assertNotIn("uvicorn.error", loggers)
        self.assertEqual(loggers["uvicorn"]["handlers"], ["default"])
        self.assertNotIn("handlers", loggers["reelproxy"])
        self.assertTrue(loggers["reelproxy"].get("propagate", True))


if __name__ == "__main__":
    unittest.main()
