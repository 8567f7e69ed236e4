import tempfile
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest import mock

from nodecheck import resources


class ProbeResourcesTests(unittest.TestCase):
    def test_reads_psutil_metrics(self):
        fake = SimpleNamespace(
            disk_usage=lambda p: SimpleNamespace(percent=42.5, free=1000),
            virtual_memory=lambda: SimpleNamespace(percent=50.0, total=800, available=400),
            getloadavg=lambda: (0.5, 0.25, 0.125),
            Error=Exception,
        )
        with tempfile.TemporaryDirectory() as td, mock.patch.object(resources, "psutil", fake):
            snap = resources.probe_resources(Path(td) / "not" / "yet" / "there")
            self.assertEqual(snap.disk_path, td)
        self.assertEqual(snap.disk_used_percent, 42.5)
        self.assertEqual(snap.disk_available_bytes, 1000)
        self.assertEqual(snap.memory_used_bytes, 400)
        self.assertEqual(snap.memory_total_bytes, 800)
        self.assertEqual(snap.cpu_load, (0.5, 0.25, 0.125))

    def test_failures_leave_metrics_empty(self):
        def boom(*_a):
            raise OSError("unsupported")

        fake = SimpleNamespace(disk_usage=boom, virtual_memory=boom, getloadavg=boom, Error=Exception)
        with mock.patch.object(resources, "psutil", fake):
            snap = resources.probe_resources(Path("."))
        self.assertIsNone(snap.disk_used_percent)
        self.assertIsNone(snap.memory_used_percent)
        self.assertIsNone(snap.cpu_load)

    def test_real_host_does_not_raise(self):
        snap = resources.probe_resources(Path("."))
        self.assertIsNotNone(snap.disk_path)


if __name__ == "__main__":
    unittest.main()
