from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from ha_light_bridge.core import settings
from ha_light_bridge.core.errors import ConfigError


class TestLoadBridgeConfig(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, name: str, data: object) -> Path:
        path = self.tmp / name
        path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
        return path

    def test_environment_wins_and_splits_patterns(self) -> None:
        env = {
            "HA_TOKEN": "tok",
            "HA_URL": "http://ha.local:8123/",
            "HA_ENTITY_FILTER": "^light\\., kitchen ,,",
            "HA_ENTITY_BLACKLIST": "switch.permit_join",
            "CONFIG_FILE": str(self.tmp / "missing.json"),
        }
        with patch.dict(os.environ, env, clear=True):
            config = settings.load_bridge_config()
        self.assertEqual("http://ha.local:8123", config.ha_url)
        self.assertEqual(["^light\\.", "kitchen"], config.entity_filter)
        self.assertEqual(["switch.permit_join"], config.entity_blacklist)
        self.assertEqual("env", config.source)

    def test_base_url_alias(self) -> None:
        with patch.dict(os.environ, {"HA_TOKEN": "tok", "HA_BASE_URL": "http://alias:8123"}, clear=True):
            self.assertEqual("http://alias:8123", settings.load_bridge_config().ha_url)

    def test_partial_environment_falls_back_to_file(self) -> None:
        path = self._write(
            "config.json",
            {
                "ha_token": "file-token",
                "ha_url": "https://ha.example.com/",
                "entity_filter": ["^light\\."],
                "entity_blacklist": ["_indicator"],
            },
        )
        with patch.dict(os.environ, {"HA_TOKEN": "env-token", "CONFIG_FILE": str(path)}, clear=True):
            config = settings.load_bridge_config()
        self.assertEqual("file-token", config.ha_token)
        self.assertEqual("https://ha.example.com", config.ha_url)
        self.assertEqual(["^light\\."], config.entity_filter)
        self.assertEqual(["_indicator"], config.entity_blacklist)
        self.assertEqual(str(path), config.source)

    def test_missing_file_is_config_error(self) -> None:
        with patch.dict(os.environ, {"CONFIG_FILE": str(self.tmp / "nope.json")}, clear=True):
            with self.assertRaises(ConfigError) as ctx:
                settings.load_bridge_config()
        self.assertIn("failed to read config file", str(ctx.exception))

    def test_malformed_file_is_config_error(self) -> None:
        path = self._write("bad.json", "{not json")
        with patch.dict(os.environ, {"CONFIG_FILE": str(path)}, clear=True):
            with self.assertRaises(ConfigError):
                settings.load_bridge_config()

    def test_empty_token_is_config_error(self) -> None:
        path = self._write("config.json", {"ha_token": "  ", "ha_url": "http://ha"})
        with patch.dict(os.environ, {"CONFIG_FILE": str(path)}, clear=True):
            with self.assertRaises(ConfigError) as ctx:
                settings.load_bridge_config()
        self.assertIn("ha_token", str(ctx.exception))

    def test_null_pattern_lists_become_empty(self) -> None:
        path = self._write("config.json", {"ha_token": "t", "ha_url": "http://ha", "entity_filter": None})
        with patch.dict(os.environ, {"CONFIG_FILE": str(path)}, clear=True):
            self.assertEqual([], settings.load_bridge_config().entity_filter)


class TestEnvHelpers(unittest.TestCase):
    def test_malformed_numbers_fall_back(self) -> None:
        with patch.dict(os.environ, {"X_FLOAT": "abc", "X_INT": "1.5"}):
            self.assertEqual(8.0, settings.env_float("X_FLOAT", 8.0))
            self.assertEqual(3, settings.env_int("X_INT", 3))

    def test_split_patterns(self) -> None:
        self.assertEqual([], settings.split_patterns(None))
        self.assertEqual(["a", "b"], settings.split_patterns(" a ,b,"))


class TestMaskedToken(unittest.TestCase):
    def test_masked(self) -> None:
        from ha_light_bridge.models.schemas import BridgeConfig

        self.assertEqual("abcd...wxyz", BridgeConfig(ha_token="abcdefghijklmnopqrstuvwxyz").masked_token())
        self.assertEqual("*****", BridgeConfig(ha_token="short").masked_token())
        self.assertIsNone(BridgeConfig().masked_token())


if __name__ == "__main__":
    unittest.main()
