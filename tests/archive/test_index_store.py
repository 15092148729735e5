import os
import tempfile
import unittest
from pathlib import Path

from dagnav.archive.car import CarBlockSource
from dagnav.archive.index_store import BlockIndexStore, BlockIndexNotFound

from ..test_utils import build_sample_dag, write_car


class BlockIndexStoreTest(unittest.TestCase):
    """Test the persistent cache of CAR section offsets."""

    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmpdir.name)
        self.builder, self.root = build_sample_dag()
        self.archive = write_car(self.tmpdir / 'sample.car', [self.root], self.builder.blocks)
        self.index_path = self.tmpdir / 'index'

    def tearDown(self):
        self._tmpdir.cleanup()

    def test_missing_database(self):
        with self.assertRaises(BlockIndexNotFound):
            BlockIndexStore(self.index_path)

    def test_save_and_load(self):
        entries = [(b'\x01\x55cid-a', 10, 3), (b'\x01\x55cid-b', 20, 4)]
        st = self.archive.stat()

        with BlockIndexStore(self.index_path, create=True) as store:
            self.assertIsNone(store.load(self.archive, st))
            store.save(self.archive, st, entries)
            self.assertEqual(entries, store.load(self.archive, st))

        # Persisted across sessions
        with BlockIndexStore(self.index_path) as store:
            self.assertEqual(entries, store.load(self.archive, st))

    def test_save_replaces_previous_entries(self):
        st = self.archive.stat()

        with BlockIndexStore(self.index_path, create=True) as store:
            store.save(self.archive, st, [(b'a', 1, 1), (b'b', 2, 2), (b'c', 3, 3)])
            store.save(self.archive, st, [(b'd', 4, 4)])
            self.assertEqual([(b'd', 4, 4)], store.load(self.archive, st))

    def test_stale_entry_ignored(self):
        st = self.archive.stat()

        with BlockIndexStore(self.index_path, create=True) as store:
            store.save(self.archive, st, [(b'a', 1, 1)])
            os.utime(self.archive, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))
            with self.assertLogs('dagnav.archive.index_store', level='WARNING'):
                self.assertIsNone(store.load(self.archive, self.archive.stat()))

    def test_archives_are_kept_apart(self):
        other = write_car(self.tmpdir / 'other.car', [self.root], self.builder.blocks[:1])

        with BlockIndexStore(self.index_path, create=True) as store:
            store.save(self.archive, self.archive.stat(), [(b'a', 1, 1)])
            store.save(other, other.stat(), [(b'b', 2, 2)])

            self.assertEqual([(b'a', 1, 1)], store.load(self.archive, self.archive.stat()))
            self.assertEqual([(b'b', 2, 2)], store.load(other, other.stat()))

    def test_block_source_uses_index(self):
        with BlockIndexStore(self.index_path, create=True) as store:
            with CarBlockSource(self.archive, store) as blocks:
                scanned = {str(cid): blocks.get(cid) for cid in blocks}

            self.assertEqual(len(self.builder.blocks), len(store.load(self.archive, self.archive.stat())))

            with self.assertLogs('dagnav.archive.car', level='INFO') as cm:
                with CarBlockSource(self.archive, store) as blocks:
                    indexed = {str(cid): blocks.get(cid) for cid in blocks}

        self.assertTrue(any("Loaded index" in line for line in cm.output))
        self.assertEqual(scanned, indexed)

    def test_inspect(self):
        with BlockIndexStore(self.index_path, create=True) as store:
            store.save(self.archive, self.archive.stat(), [(b'\x01\x55', 7, 9)])
            records = list(store.inspect())

        self.assertTrue(any(r.startswith('archive-property ') and ' blocks 1' in r for r in records))
        self.assertTrue(any(r.startswith('block ') and 'cid:0155 offset:7 length:9' in r for r in records))

    def test_closed_store(self):
        store = BlockIndexStore(self.index_path, create=True)
        store.close()

        with self.assertRaises(BrokenPipeError):
            store.load(self.archive, self.archive.stat())


if __name__ == '__main__':
    unittest.main()
