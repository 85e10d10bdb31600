import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from agent.config import load_config
from agent.exceptions import ConfigError


class TestConfig(unittest.TestCase):
    def _load(self, tmpdir: str, data: dict):
        config_path = Path(tmpdir) / "config.json"
        data.setdefault("data_dir", str(Path(tmpdir) / "data"))
        config_path.write_text(json.dumps(data))
        return load_config(str(config_path))

    def test_load_config_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir, mock.patch.dict(os.environ, {}, clear=True):
            config = self._load(tmpdir, {})

            self.assertEqual(config.chat_model.model_name, "gpt-4o-mini")
            self.assertEqual(config.chat_model.base_url, "https://api.openai.com/v1")
            self.assertEqual(config.chat_model.api_key, "")
            self.assertFalse(config.chat_model.json_mode)
            self.assertEqual(config.endpoint.connect_timeout, 5.0)
            self.assertEqual(config.endpoint.read_timeout, 120.0)
            self.assertEqual(config.endpoint.max_retries, 3)
            self.assertTrue(config.endpoint.health_check_on_start)
            self.assertEqual(config.tool_execution.default_timeout, 30.0)
            self.assertEqual(config.tool_execution.timeouts, {})
            self.assertEqual(config.tool_execution.max_result_length, 20000)
            self.assertEqual(config.tools.weather.api_key, "")
            self.assertEqual(config.tools.minecraft_log.lines, 50)
            self.assertEqual(config.max_tool_rounds, 10)
            self.assertEqual(config.console.social_context, "console")
            self.assertEqual(config.console.chat_history_length, 20)
            self.assertFalse(config.telemetry.enabled)
            self.assertEqual([b.name for b in config.bots], ["Bot"])
            self.assertEqual(config.log_dir, str(Path(tmpdir) / "data" / "logs"))
            self.assertTrue((Path(tmpdir) / "data" / "logs").is_dir())

    def test_missing_file_uses_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir, mock.patch.dict(os.environ, {}, clear=True):
            config = load_config(str(Path(tmpdir) / "absent.json"))
            self.assertEqual(config.chat_model.model_name, "gpt-4o-mini")

    def test_env_overrides(self):
        env = {"OPENAI_API_KEY": "sk-env", "OPENAI_BASE_URL": "http://localhost:8080/v1"}
        with tempfile.TemporaryDirectory() as tmpdir, mock.patch.dict(os.environ, env, clear=True):
            config = self._load(tmpdir, {})
            self.assertEqual(config.chat_model.api_key, "sk-env")
            self.assertEqual(config.chat_model.base_url, "http://localhost:8080/v1")

            config = self._load(tmpdir, {"chat_model": {"api_key": "sk-file"}})
            self.assertEqual(config.chat_model.api_key, "sk-file")

    def test_tool_execution_settings(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = self._load(tmpdir, {
                "tool_execution": {
                    "default_timeout": 12,
                    "timeouts": {"get_weather": 5},
                    "max_result_length": 1000,
                },
                "max_tool_rounds": 3,
            })

            self.assertEqual(config.tool_execution.default_timeout, 12.0)
            self.assertEqual(config.tool_execution.timeouts, {"get_weather": 5.0})
            self.assertEqual(config.tool_execution.max_result_length, 1000)
            self.assertEqual(config.max_tool_rounds, 3)

    def test_bots_section(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = self._load(tmpdir, {
                "bots": [{
                    "name": "Egbert",
                    "personality": "You are Egbert.",
                    "social_contexts": ["console"],
                    "triggers": [{"pattern": "egbert", "social_context": "console", "probability": 0.5}],
                    "tools": ["get_weather"],
                }],
            })

            bot = config.bots[0]
            self.assertEqual(bot.name, "Egbert")
            self.assertEqual(bot.social_contexts, ["console"])
            self.assertEqual(bot.triggers[0].pattern, "egbert")
            self.assertEqual(bot.triggers[0].probability, 0.5)
            self.assertEqual(bot.tools, ["get_weather"])

    def test_duplicate_bot_names(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                self._load(tmpdir, {"bots": [{"name": "Egbert"}, {"name": "egbert"}]})

    def test_invalid_values(self):
        invalid = [
            {"tool_execution": {"default_timeout": "fast"}},
            {"tool_execution": {"timeouts": []}},
            {"max_tool_rounds": -1},
            {"bots": [{"name": "A", "triggers": [{"pattern": "x", "probability": 1.5}]}]},
            {"bots": [{"name": ""}]},
            {"chat_model": {"json_mode": "yes"}},
            {"tools": {"minecraft_log": {"filter": ""}}},
            {"tools": {"minecraft_rcon": {"port": "rcon"}}},
            {"bots": [{"name": "A", "tools": ["get_weather", "get_weather"]}]},
        ]
        with tempfile.TemporaryDirectory() as tmpdir:
            for data in invalid:
                with self.subTest(data=data):
                    with self.assertRaises(ConfigError):
                        self._load(tmpdir, data)

    def test_sections_must_be_objects(self):
        sections = ["chat_model", "endpoint", "tool_execution", "tools", "console", "telemetry"]
        with tempfile.TemporaryDirectory() as tmpdir:
            for section in sections:
                for value in (None, [], "x"):
                    with self.subTest(section=section, value=value):
                        with self.assertRaises(ConfigError):
                            self._load(tmpdir, {section: value})

    def test_minecraft_rcon_settings(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = self._load(tmpdir, {
                "tools": {"minecraft_rcon": {"host": " localhost ", "port": "25576", "password": "secret"}},
            })

            self.assertEqual(config.tools.minecraft_rcon.host, "localhost")
            self.assertEqual(config.tools.minecraft_rcon.port, 25576)
            self.assertEqual(config.tools.minecraft_rcon.password, "secret")

    def test_invalid_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"
            config_path.write_text("{not json")
            with self.assertRaises(ConfigError):
                load_config(str(config_path))
