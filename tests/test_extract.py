import json
import unittest

from nodecheck import extract
from nodecheck.errors import MalformedPayload
from nodecheck.models import GIB, SyncStatus


class SyncClassificationTests(unittest.TestCase):
    def test_progress_just_above_threshold_is_synced(self):
        self.assertTrue(extract.is_fully_synced(800000, 800000, 0.999901))

    def test_threshold_itself_is_not_synced(self):
        self.assertFalse(extract.is_fully_synced(800000, 800000, 0.9999))

    def test_height_gap_is_not_synced_even_at_full_progress(self):
        self.assertFalse(extract.is_fully_synced(799990, 800000, 1.0))

    def test_missing_progress_is_undefined_not_false(self):
        self.assertIsNone(extract.is_fully_synced(800000, 800000, None))

    def test_height_gap_without_progress_is_not_synced(self):
        self.assertIs(extract.is_fully_synced(100, 500, None), False)

    def test_blocks_remaining(self):
        self.assertEqual(extract.blocks_remaining(SyncStatus(blocks=10, headers=25)), 15)
        self.assertEqual(extract.blocks_remaining(SyncStatus(blocks=30, headers=25)), 0)

    def test_sync_percentage_undefined_without_progress(self):
        self.assertIsNone(extract.sync_percentage(SyncStatus()))
        self.assertAlmostEqual(extract.sync_percentage(SyncStatus(verification_progress=0.5)), 50.0)


class ConnectionHealthTests(unittest.TestCase):
    def test_boundary(self):
        self.assertEqual(extract.connection_health(7), "low")
        self.assertEqual(extract.connection_health(8), "healthy")
        self.assertEqual(extract.connection_health(0), "low")

    def test_threshold_is_configurable(self):
        self.assertEqual(extract.connection_health(8, minimum=10), "low")
        self.assertEqual(extract.connection_health(3, minimum=3), "healthy")


class ConversionTests(unittest.TestCase):
    def test_gigabyte_round_trip(self):
        for n in (0, 1, 7, 465):
            raw = n * GIB
            self.assertAlmostEqual(extract.gb_to_bytes(extract.bytes_to_gb(raw)), raw, delta=1)

    def test_display_rounding(self):
        self.assertEqual(f"{extract.bytes_to_gb(500000000000):.2f}", "465.66")

    def test_uptime_decomposition(self):
        self.assertEqual(extract.decompose_uptime(90061), (1, 1, 1))
        self.assertEqual(extract.decompose_uptime(0), (0, 0, 0))
        self.assertEqual(extract.decompose_uptime(86399), (0, 23, 59))


class ParserTests(unittest.TestCase):
    def test_parse_sync_status(self):
        s = extract.parse_sync_status(json.dumps({
            "blocks": 5, "headers": 9, "verificationprogress": 0.25,
            "chain": "test", "size_on_disk": 1024, "pruned": True,
        }))
        self.assertEqual((s.blocks, s.headers, s.chain, s.pruned), (5, 9, "test", True))
        self.assertEqual(s.verification_progress, 0.25)

    def test_missing_fields_default_but_progress_stays_none(self):
        s = extract.parse_sync_status('{"chain": "main"}')
        self.assertEqual((s.blocks, s.headers, s.size_on_disk), (0, 0, 0))
        self.assertIsNone(s.verification_progress)
        self.assertFalse(s.pruned)

    def test_parse_network_status_keeps_network_order(self):
        n = extract.parse_network_status(json.dumps({
            "version": 270000, "subversion": "/Satoshi:27.0.0/", "connections": 3,
            "networks": [{"name": "ipv4"}, {"name": "onion"}, {"bogus": 1}],
        }))
        self.assertEqual(n.networks, ["ipv4", "onion"])
        self.assertEqual(n.connections, 3)

    def test_parse_mempool_status(self):
        m = extract.parse_mempool_status('{"size": 12, "bytes": 3400, "usage": 1}')
        self.assertEqual((m.size, m.bytes), (12, 3400))

    def test_parse_uptime(self):
        self.assertEqual(extract.parse_uptime("3600\n"), 3600)
        with self.assertRaises(MalformedPayload):
            extract.parse_uptime("error: nope")

    def test_non_object_payload_is_malformed(self):
        with self.assertRaises(MalformedPayload):
            extract.parse_sync_status("[1, 2]")
        with self.assertRaises(MalformedPayload):
            extract.parse_network_status("not json")


if __name__ == "__main__":
    unittest.main()
