import unittest

from dagnav.codec.registry import decode_block
from dagnav.codec.unixfs import UnixfsType, decode_unixfs_data, directory_links, unixfs_data_of
from dagnav.dag.errors import BlockNotFound, DecodeFailed

from ..test_utils import DagBuilder, encode_pb, encode_unixfs_data, make_cid


class UnixfsDataTest(unittest.TestCase):
    """Test decoding of the UnixFS Data message."""

    def test_file_fields(self):
        data = encode_unixfs_data(UnixfsType.FILE, data=b'abc', file_size=3, block_sizes=[1, 2], mode=0o644)

        unixfs = decode_unixfs_data(data)

        self.assertEqual(UnixfsType.FILE, unixfs.type)
        self.assertEqual(b'abc', unixfs.data)
        self.assertEqual(3, unixfs.file_size)
        self.assertEqual([1, 2], unixfs.block_sizes)
        self.assertEqual(0o644, unixfs.mode)

    def test_packed_block_sizes(self):
        data = encode_unixfs_data(UnixfsType.FILE) + b'\x22\x03\x01\x80\x01'

        self.assertEqual([1, 128], decode_unixfs_data(data).block_sizes)

    def test_mtime(self):
        mtime = b'\x08\x2a\x15' + (7).to_bytes(4, 'little')
        data = encode_unixfs_data(UnixfsType.FILE) + b'\x42' + bytes([len(mtime)]) + mtime

        self.assertEqual((42, 7), decode_unixfs_data(data).mtime)

    def test_negative_mtime(self):
        # int64 -1 takes a 10-byte varint
        mtime = b'\x08' + b'\xff' * 9 + b'\x01' + b'\x15' + (5).to_bytes(4, 'little')
        data = encode_unixfs_data(UnixfsType.FILE) + b'\x42' + bytes([len(mtime)]) + mtime

        self.assertEqual((-1, 5), decode_unixfs_data(data).mtime)

    def test_largest_file_size(self):
        data = encode_unixfs_data(UnixfsType.FILE) + b'\x18' + b'\xff' * 9 + b'\x01'

        self.assertEqual(2 ** 64 - 1, decode_unixfs_data(data).file_size)

    def test_missing_type(self):
        with self.assertRaises(DecodeFailed):
            decode_unixfs_data(b'\x18\x03')

    def test_unknown_type(self):
        with self.assertRaises(DecodeFailed):
            decode_unixfs_data(b'\x08\x09')


class DirectoryLinksTest(unittest.TestCase):
    """Test interpreting decoded nodes as UnixFS directories."""

    def setUp(self):
        self.builder = DagBuilder()

    def _load(self, cid):
        return decode_block(cid, self.builder.source().get(cid))

    _node = _load

    def test_basic_directory_keeps_stored_order(self):
        b = self.builder.raw(b'b')
        a = self.builder.raw(b'a')
        directory = self.builder.directory([('b', b), ('a', a)])

        self.assertEqual([('b', b), ('a', a)], directory_links(self._node(directory), self._load))

    def test_leaves(self):
        raw = self.builder.raw(b'raw leaf')
        file = self.builder.file(b'file')
        cbor = self.builder.add('dag-cbor', b'\xa1ax\x01')
        no_data = self.builder.add('dag-pb', encode_pb([], None))

        for cid in (raw, file, cbor, no_data):
            with self.subTest(cid=str(cid)):
                self.assertIsNone(directory_links(self._node(cid), self._load))

    def test_corrupt_directory_data(self):
        cid = self.builder.add('dag-pb', encode_pb([], b'\x08'))

        with self.assertRaises(DecodeFailed):
            directory_links(self._node(cid), self._load)

    def test_hamt_shard_flattened(self):
        alpha = self.builder.raw(b'alpha')
        beta = self.builder.raw(b'beta')
        gamma = self.builder.raw(b'gamma')
        inner = self.builder.shard([('0beta', beta), ('Fgamma', gamma)])
        root = self.builder.shard([('1alpha', alpha), ('A', inner)])

        links = directory_links(self._node(root), self._load)

        self.assertEqual([('alpha', alpha), ('beta', beta), ('gamma', gamma)], links)
        self.assertEqual(UnixfsType.HAMT_SHARD, unixfs_data_of(self._node(root)).type)

    def test_hamt_prefix_width_follows_fanout(self):
        entry = self.builder.raw(b'entry')
        root = self.builder.shard([('FFname', entry)], fanout=256)

        self.assertEqual([('name', entry)], directory_links(self._node(root), self._load))

    def test_hamt_missing_sub_shard(self):
        missing = make_cid('dag-pb', b'not stored')
        root = self.builder.shard([('3', missing)])

        with self.assertRaises(BlockNotFound):
            directory_links(self._node(root), self._load)

    def test_hamt_bucket_pointing_at_file(self):
        file = self.builder.file(b'file')
        root = self.builder.shard([('3', file)])

        with self.assertRaises(DecodeFailed):
            directory_links(self._node(root), self._load)

    def test_hamt_invalid_fanout(self):
        entry = self.builder.raw(b'entry')
        root = self.builder.shard([('1entry', entry)], fanout=10)

        with self.assertRaises(DecodeFailed):
            directory_links(self._node(root), self._load)


if __name__ == '__main__':
    unittest.main()
