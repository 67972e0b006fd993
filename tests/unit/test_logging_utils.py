import logging
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from ticker_sentiment.utils.logging_utils import mask_secret, setup_logging


class TestSetupLogging(unittest.TestCase):

    def test_missing_file_falls_back_to_basic_config(self):
        with patch('ticker_sentiment.utils.logging_utils.logging.basicConfig') as mock_basic:
            setup_logging("/nonexistent/logging.yaml")

            mock_basic.assert_called_once_with(level=logging.INFO)

    def test_yaml_config_creates_log_directory_and_applies_level(self):
        with TemporaryDirectory() as tmp:
            log_file = Path(tmp) / "nested" / "app.log"
            config = Path(tmp) / "logging.yaml"
            config.write_text(
                "version: 1\n"
                "disable_existing_loggers: false\n"
                "handlers:\n"
                "  file:\n"
                "    class: logging.FileHandler\n"
                f"    filename: {log_file}\n"
                "    level: INFO\n"
                "loggers:\n"
                "  '':\n"
                "    handlers: [file]\n"
                "    level: INFO\n"
            )

            with patch('ticker_sentiment.utils.logging_utils.logging.config.dictConfig') as mock_dict_config:
                setup_logging(config, log_level="debug")

            self.assertTrue(log_file.parent.exists())
            applied = mock_dict_config.call_args.args[0]
            self.assertEqual(applied["loggers"][""]["level"], "DEBUG")
            self.assertEqual(applied["handlers"]["file"]["level"], "DEBUG")

    def test_broken_yaml_falls_back(self):
        with TemporaryDirectory() as tmp:
            config = Path(tmp) / "logging.yaml"
            config.write_text("version: [unclosed\n")

            with patch('ticker_sentiment.utils.logging_utils.logging.basicConfig') as mock_basic:
                setup_logging(config)

            mock_basic.assert_called_once()


class TestMaskSecret(unittest.TestCase):

    def test_mask_secret(self):
        self.assertEqual(mask_secret(None), "<unset>")
        self.assertEqual(mask_secret("abc"), "***")
        self.assertEqual(mask_secret("sk-proj-123456"), "***3456")
