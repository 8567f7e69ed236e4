import socket
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from nodecheck import sv2
from nodecheck.models import NodeConfig, NodeProfile, Sv2Settings

from _fakes import fake_context


class EnvFileTests(unittest.TestCase):
    def test_parse_env_file(self):
        env = sv2.parse_env_file(
            "# written by the installer\n"
            "export TOKEN=\"abc123\"\n"
            "TP_ADDRESS='127.0.0.1:8442'\n"
            "TOKEN=second\n"
            "not a line\n"
        )
        self.assertEqual(env["TOKEN"], "abc123")
        self.assertEqual(env["TP_ADDRESS"], "127.0.0.1:8442")


class LogTailTests(unittest.TestCase):
    def test_keeps_last_sv2_lines(self):
        with tempfile.TemporaryDirectory() as td:
            log = Path(td) / "debug.log"
            log.write_text("".join(f"line {i} {'Sv2' if i % 2 else 'net'}\n" for i in range(10)), encoding="utf-8")
            lines = sv2.recent_log_lines(log, limit=2)
        self.assertEqual(lines, ["line 7 Sv2", "line 9 Sv2"])

    def test_missing_log(self):
        self.assertEqual(sv2.recent_log_lines(Path("/definitely/not/here.log")), [])


class PortTests(unittest.TestCase):
    def test_listening_port_is_reachable(self):
        srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            srv.bind(("127.0.0.1", 0))
            srv.listen(1)
            port = srv.getsockname()[1]
            self.assertTrue(sv2.port_reachable(port, timeout=2))
        finally:
            srv.close()

    def test_closed_port_is_not_reachable(self):
        srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        srv.bind(("127.0.0.1", 0))
        port = srv.getsockname()[1]
        srv.close()
        self.assertFalse(sv2.port_reachable(port, timeout=1))


class CheckSecondaryProtocolTests(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.tmp = Path(self._td.name)
        profile = NodeProfile(name="sv2", services={"linux": "bitcoind-sv2"}, secondary_protocol=True)
        self.ctx = fake_context(self.tmp, profile=profile)

    def tearDown(self):
        self._td.cleanup()

    def test_applies(self):
        core_ctx = fake_context(self.tmp)
        plain = NodeConfig(conf_path=self.tmp / "bitcoin.conf")
        self.assertTrue(sv2.applies(self.ctx, plain))
        self.assertFalse(sv2.applies(core_ctx, plain))
        enabled = NodeConfig(conf_path=self.tmp / "bitcoin.conf", sv2=Sv2Settings(enabled=True))
        self.assertTrue(sv2.applies(core_ctx, enabled))

    def test_disabled_uses_defaults(self):
        status = sv2.check_secondary_protocol(self.ctx, NodeConfig(conf_path=self.tmp / "bitcoin.conf"))
        self.assertFalse(status.enabled)
        self.assertEqual(status.port, sv2.DEFAULT_PORT)
        self.assertEqual(status.bind_address, sv2.DEFAULT_BIND)

    def test_enabled_with_env_and_listener(self):
        env = self.tmp / ".sv2_environment"
        env.write_text("export TOKEN=t0k\nexport TP_ADDRESS=10.0.0.2:8442\n", encoding="utf-8")
        (self.tmp / "debug.log").write_text("sv2: template sent\n", encoding="utf-8")
        srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            srv.bind(("127.0.0.1", 0))
            srv.listen(1)
            port = srv.getsockname()[1]
            conf = NodeConfig(
                conf_path=self.tmp / "bitcoin.conf",
                sv2=Sv2Settings(enabled=True, port=port, bind="127.0.0.1"),
            )
            status = sv2.check_secondary_protocol(self.ctx, conf, port_timeout=2, env_file=env)
        finally:
            srv.close()
        self.assertTrue(status.port_reachable)
        self.assertTrue(status.env_file_found)
        self.assertTrue(status.token_configured)
        self.assertEqual(status.peer_address, "10.0.0.2:8442")
        self.assertEqual(status.recent_log_lines, ["sv2: template sent"])
        self.assertTrue(sv2.secondary_ok(status))

    def test_unreadable_env_file_is_a_warning(self):
        env = self.tmp / ".sv2_environment"
        env.write_text("export TOKEN=t0k\n", encoding="utf-8")
        conf = NodeConfig(conf_path=self.tmp / "bitcoin.conf", sv2=Sv2Settings(enabled=True, port=1))
        with mock.patch.object(Path, "read_text", side_effect=PermissionError("denied")):
            status = sv2.check_secondary_protocol(self.ctx, conf, port_timeout=0.5, env_file=env)
        self.assertTrue(status.env_file_found)
        self.assertFalse(status.token_configured)
        self.assertIsNone(status.peer_address)

    def test_enabled_without_env_file(self):
        conf = NodeConfig(conf_path=self.tmp / "bitcoin.conf", sv2=Sv2Settings(enabled=True, port=1))
        status = sv2.check_secondary_protocol(self.ctx, conf, port_timeout=0.5, env_file=self.tmp / "missing")
        self.assertFalse(status.env_file_found)
        self.assertFalse(status.token_configured)
        self.assertFalse(sv2.secondary_ok(status))


if __name__ == "__main__":
    unittest.main()
