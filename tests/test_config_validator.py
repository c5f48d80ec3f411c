import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from config_validator import ConfigValidator, ValidationSeverity, load_and_validate_config


class TestConfigValidator(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self._tmpdir.name) / "config.yaml"

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def _validate(self, text: str):
        self.path.write_text(text, encoding="utf-8")
        validator = ConfigValidator(self.path)
        config, issues = validator.validate_and_load()
        return config, {(i.severity, i.path) for i in issues}

    def test_minimal_config_is_valid(self) -> None:
        config, issues = self._validate(
            "database:\n  path: config/castellan.db\n"
            "core:\n  admins: ['*!*@trusted.example.net']\n"
        )
        self.assertEqual(config["database"]["path"], "config/castellan.db")
        self.assertEqual(issues, set())

    def test_database_path_is_required(self) -> None:
        config, issues = self._validate("core:\n  admins: ['*!*@h']\n")
        self.assertIsNone(config)
        self.assertIn((ValidationSeverity.ERROR, "database.path"), issues)

    def test_admins_must_be_a_list_of_hostmasks(self) -> None:
        _, issues = self._validate("database: {path: x.db}\ncore:\n  admins: boss\n")
        self.assertIn((ValidationSeverity.ERROR, "core.admins"), issues)
        _, issues = self._validate("database: {path: x.db}\ncore:\n  admins: ['boss']\n")
        self.assertIn((ValidationSeverity.WARNING, "core.admins[0]"), issues)

    def test_squire_settings(self) -> None:
        config, issues = self._validate(
            "database: {path: x.db}\ncore: {admins: ['*!*@h']}\n"
            "squire:\n  scan_interval_minutes: -1\n  admin_mode: 'op'\n  default_friend_mode: '+v'\n"
        )
        self.assertIsNone(config)
        self.assertIn((ValidationSeverity.ERROR, "squire.scan_interval_minutes"), issues)
        self.assertIn((ValidationSeverity.ERROR, "squire.admin_mode"), issues)
        self.assertNotIn((ValidationSeverity.ERROR, "squire.default_friend_mode"), issues)

    def test_debug_flag_must_be_boolean(self) -> None:
        _, issues = self._validate("database: {path: x.db}\ncore: {admins: ['*!*@h'], debug_mode_on_startup: 'yes'}\n")
        self.assertIn((ValidationSeverity.ERROR, "core.debug_mode_on_startup"), issues)

    def test_connection_keys_in_yaml_are_ignored_with_warning(self) -> None:
        config, issues = self._validate(
            "database: {path: x.db}\ncore: {admins: ['*!*@h']}\nconnection: {server: irc.example.net, ssl: true}\n"
        )
        self.assertIsNotNone(config)
        self.assertIn((ValidationSeverity.WARNING, "connection.server"), issues)

    def test_environment_substitution(self) -> None:
        with mock.patch.dict(os.environ, {"CASTELLAN_DB": "/srv/castellan.db"}):
            config, _ = self._validate("database: {path: '${CASTELLAN_DB}'}\ncore: {admins: ['*!*@h']}\n")
        self.assertEqual(config["database"]["path"], "/srv/castellan.db")

    def test_password_hash_is_not_substituted(self) -> None:
        digest = "$2b$12$abcdefghijklmnopqrstuuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ01"
        config, _ = self._validate(
            f"database: {{path: x.db}}\ncore: {{admins: ['*!*@h'], super_admin_password_hash: '{digest}'}}\n"
        )
        self.assertEqual(config["core"]["super_admin_password_hash"], digest)

    def test_missing_and_malformed_files(self) -> None:
        config, success = load_and_validate_config(Path(self._tmpdir.name) / "absent.yaml")
        self.assertIsNone(config)
        self.assertFalse(success)
        config, issues = self._validate("core: [unclosed\n")
        self.assertIsNone(config)
        self.assertIn((ValidationSeverity.ERROR, "config_file"), issues)


if __name__ == "__main__":
    unittest.main()
