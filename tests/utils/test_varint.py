import io
import unittest

from dagnav.utils.varint import encode_varint, decode_varint, read_varint


class VarintTest(unittest.TestCase):
    """Test unsigned LEB128 varint encoding."""

    def test_known_encodings(self):
        """Values used by multiformats prefixes encode to their well-known bytes."""
        self.assertEqual(b'\x00', encode_varint(0))
        self.assertEqual(b'\x70', encode_varint(0x70))
        self.assertEqual(b'\x80\x01', encode_varint(128))
        self.assertEqual(b'\xa9\x02', encode_varint(0x0129))
        self.assertEqual(b'\xac\x02', encode_varint(300))

    def test_decode_with_offset(self):
        data = b'\xff' + encode_varint(300) + b'\x01'
        self.assertEqual((300, 2), decode_varint(data, 1))
        self.assertEqual((1, 1), decode_varint(data, 3))

    def test_maximum_value(self):
        value = (1 << 63) - 1
        encoded = encode_varint(value)
        self.assertEqual(9, len(encoded))
        self.assertEqual((value, 9), decode_varint(encoded))

    def test_rejects_out_of_range(self):
        with self.assertRaises(ValueError):
            encode_varint(-1)
        with self.assertRaises(ValueError):
            encode_varint(1 << 63)

    def test_rejects_truncated(self):
        with self.assertRaises(ValueError) as cm:
            decode_varint(b'\x80\x80')
        self.assertIn("truncated", str(cm.exception))

    def test_rejects_non_minimal(self):
        with self.assertRaises(ValueError):
            decode_varint(b'\x81\x00')

    def test_rejects_overlong(self):
        with self.assertRaises(ValueError):
            decode_varint(b'\xff' * 10)

    def test_read_from_stream(self):
        stream = io.BytesIO(encode_varint(5) + encode_varint(1000))
        self.assertEqual(5, read_varint(stream))
        self.assertEqual(1000, read_varint(stream))
        self.assertIsNone(read_varint(stream))

    def test_read_truncated_stream(self):
        with self.assertRaises(ValueError):
            read_varint(io.BytesIO(b'\x80'))


if __name__ == '__main__':
    unittest.main()
