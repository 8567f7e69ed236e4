import os
import stat
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from nodecheck import nodeconf
from nodecheck.models import NodeConfig


class LocateConfigTests(unittest.TestCase):
    def test_missing_file_returns_empty_config(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "nope" / "bitcoin.conf"
            cfg = nodeconf.locate_config(path)
        self.assertFalse(cfg.exists)
        self.assertIsNone(cfg.rpc_user)
        self.assertIsNone(cfg.rpc_password)
        self.assertFalse(cfg.has_credentials)

    def test_first_match_wins_and_comments_ignored(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "bitcoin.conf"
            path.write_text(
                "# rpcuser=commented\n"
                "server=1\n"
                "rpcuser = alice\n"
                "rpcpassword=s3cr=t\n"
                "\n"
                "[test]\n"
                "rpcuser=bob\n",
                encoding="utf-8",
            )
            cfg = nodeconf.locate_config(path)
        self.assertTrue(cfg.exists)
        self.assertEqual(cfg.rpc_user, "alice")
        self.assertEqual(cfg.rpc_password, "s3cr=t")
        self.assertIsNone(cfg.sv2)

    def test_partial_credentials_are_not_usable(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "bitcoin.conf"
            path.write_text("rpcuser=alice\n", encoding="utf-8")
            cfg = nodeconf.locate_config(path)
        self.assertEqual(cfg.rpc_user, "alice")
        self.assertFalse(cfg.has_credentials)

    def test_sv2_section(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "bitcoin.conf"
            path.write_text("sv2=1\nsv2port=9000\nsv2bind=127.0.0.1\n", encoding="utf-8")
            cfg = nodeconf.locate_config(path)
        self.assertTrue(cfg.sv2.enabled)
        self.assertEqual(cfg.sv2.port, 9000)
        self.assertEqual(cfg.sv2.bind, "127.0.0.1")

    def test_invalid_sv2_port_is_ignored(self):
        values = nodeconf.parse_conf_text("sv2=1\nsv2port=abc\n")
        settings = nodeconf._sv2_settings(values)
        self.assertTrue(settings.enabled)
        self.assertIsNone(settings.port)


class DefaultDataDirTests(unittest.TestCase):
    def test_windows_uses_appdata(self):
        with mock.patch.dict(os.environ, {"APPDATA": str(Path("/tmp/appdata"))}):
            self.assertEqual(nodeconf.default_data_dir("win32"), Path("/tmp/appdata") / "Bitcoin")

    def test_macos_path(self):
        with mock.patch.object(nodeconf, "user_home", return_value=Path("/Users/x")):
            self.assertEqual(
                nodeconf.default_data_dir("darwin"),
                Path("/Users/x/Library/Application Support/Bitcoin"),
            )

    def test_linux_path(self):
        with mock.patch.object(nodeconf, "user_home", return_value=Path("/home/x")):
            self.assertEqual(nodeconf.default_data_dir("linux"), Path("/home/x/.bitcoin"))


class CredentialsFileTests(unittest.TestCase):
    def _conf(self):
        return NodeConfig(conf_path=Path("bitcoin.conf"), rpc_user="alice", rpc_password="pw", exists=True)

    def test_no_credentials_yields_none(self):
        with nodeconf.credentials_file(NodeConfig(conf_path=Path("x"))) as path:
            self.assertIsNone(path)

    def test_file_written_and_removed(self):
        with nodeconf.credentials_file(self._conf()) as path:
            self.assertTrue(path.exists())
            text = path.read_text(encoding="utf-8")
            self.assertIn("rpcuser=alice", text)
            self.assertIn("rpcpassword=pw", text)
            self.assertIn("rpcconnect=127.0.0.1", text)
            if sys.platform != "win32":
                mode = stat.S_IMODE(path.stat().st_mode)
                self.assertEqual(mode & 0o077, 0)
        self.assertFalse(path.exists())

    def test_file_removed_when_body_raises(self):
        seen = {}
        with self.assertRaises(RuntimeError):
            with nodeconf.credentials_file(self._conf()) as path:
                seen["path"] = path
                raise RuntimeError("boom")
        self.assertFalse(seen["path"].exists())

    def test_file_removed_on_system_exit(self):
        seen = {}
        with self.assertRaises(SystemExit):
            with nodeconf.credentials_file(self._conf()) as path:
                seen["path"] = path
                raise SystemExit(1)
        self.assertFalse(seen["path"].exists())


if __name__ == "__main__":
    unittest.main()
