"""Test YAML configuration and capability flags."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import typer
import yaml

from branchguard import config
from branchguard.config import Capabilities


class ConfigTestCase(unittest.TestCase):
    """Point the config directory at a temporary directory."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.config_dir = Path(self.tmpdir.name)
        patcher = patch.object(config, "get_config_dir", return_value=self.config_dir)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(self.tmpdir.cleanup)

    def write_config(self, data):
        with open(self.config_dir / "config.yml", "w") as f:
            yaml.dump(data, f)


class TestLoadConfig(ConfigTestCase):
    def test_defaults_without_file(self):
        self.assertEqual(config.get_remote(), "origin")
        self.assertEqual(config.get_protected_branch(), "main")
        self.assertEqual(config.get_capabilities(), Capabilities())

    def test_file_values_override_defaults(self):
        self.write_config({"default": {"protected_branch": "trunk"}})

        self.assertEqual(config.get_protected_branch(), "trunk")
        self.assertEqual(config.get_remote(), "origin")

    def test_partial_capabilities(self):
        self.write_config({"capabilities": {"safe_replace": False}})

        capabilities = config.get_capabilities()
        self.assertFalse(capabilities.safe_replace)
        self.assertTrue(capabilities.risk_analysis)
        self.assertTrue(capabilities.divergence_analysis)

    def test_empty_sections_are_ignored(self):
        self.write_config({"default": None, "capabilities": None})
        self.assertEqual(config.get_remote(), "origin")
        self.assertEqual(config.get_capabilities(), Capabilities())

    def test_empty_file(self):
        (self.config_dir / "config.yml").write_text("")
        self.assertEqual(config.load_config(), config.default_config())


class TestConfigCommands(ConfigTestCase):
    def test_set_remote_persists(self):
        config.set_remote_command("upstream")
        self.assertEqual(config.get_remote(), "upstream")

    def test_set_protected_persists(self):
        config.set_protected_command("release")
        self.assertEqual(config.get_protected_branch(), "release")

    def test_set_capability(self):
        config.set_capability_command("divergence_analysis", False)
        self.assertFalse(config.get_capabilities().divergence_analysis)

        config.set_capability_command("divergence_analysis", True)
        self.assertTrue(config.get_capabilities().divergence_analysis)

    def test_unknown_capability_exits(self):
        with self.assertRaises(typer.Exit):
            config.set_capability_command("time_travel", True)
        self.assertFalse((self.config_dir / "config.yml").exists())


class TestCapabilities(unittest.TestCase):
    def test_round_trip_names(self):
        self.assertEqual(
            config.CAPABILITY_NAMES, ("risk_analysis", "divergence_analysis", "safe_replace")
        )

    def test_from_dict_defaults_missing_flags(self):
        self.assertEqual(Capabilities.from_dict({}), Capabilities())
        self.assertEqual(
            Capabilities.from_dict({"risk_analysis": False}).to_dict(),
            {"risk_analysis": False, "divergence_analysis": True, "safe_replace": True},
        )


if __name__ == "__main__":
    unittest.main()
