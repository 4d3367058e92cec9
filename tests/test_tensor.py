import unittest

import numpy as np

from scan_kit.tensor import ElementType, RawOutputTensor


class TestRawOutputTensor(unittest.TestCase):
    def test_reads_contiguous_float32(self) -> None:
        arr = np.arange(12, dtype=np.float32).reshape(3, 4)
        t = RawOutputTensor.from_array("coordinates", arr)
        self.assertEqual(t.shape, (3, 4))
        self.assertEqual(t.strides, (4, 1))
        self.assertEqual(t.element_type, ElementType.FLOAT32)
        self.assertEqual(t.read(2, 3), 11.0)
        self.assertEqual(t.read(1, 0), 4.0)

    def test_transposed_view_keeps_logical_order(self) -> None:
        base = np.arange(8, dtype=np.float64).reshape(4, 2)
        t = RawOutputTensor.from_array("boxes", base.T)  # shape (2, 4)
        self.assertEqual(t.shape, (2, 4))
        self.assertEqual(t.strides, (1, 2))
        self.assertEqual(t.read(0, 3), 6.0)
        self.assertEqual(t.read(1, 2), 5.0)
        self.assertTrue(np.array_equal(t.to_numpy(), base.T))

    def test_explicit_strides_over_flat_buffer(self) -> None:
        # Rows padded to 6 elements; only the first 4 are logical.
        buf = np.array([1, 2, 3, 4, -1, -1, 5, 6, 7, 8, -1, -1], dtype=np.float32)
        t = RawOutputTensor(name="coordinates", buffer=buf, shape=(2, 4), strides=(6, 1))
        self.assertEqual(t.read(1, 0), 5.0)
        self.assertEqual(t.read(1, 3), 8.0)
        self.assertTrue(np.array_equal(t.to_numpy(), np.array([[1, 2, 3, 4], [5, 6, 7, 8]], dtype=np.float64)))

    def test_float16_reads_zero(self) -> None:
        t = RawOutputTensor.from_array("confidence", np.array([0.5, 0.9], dtype=np.float16))
        self.assertEqual(t.element_type, ElementType.FLOAT16)
        with self.assertLogs("scan_kit.tensor", level="WARNING") as logs:
            self.assertEqual(t.read(0), 0.0)
            self.assertEqual(t.read(1), 0.0)
        # Reported once per tensor.
        self.assertEqual(len(logs.records), 1)
        self.assertTrue(np.array_equal(t.to_numpy(), np.zeros(2)))

    def test_out_of_range_index(self) -> None:
        t = RawOutputTensor.from_array("x", np.zeros((2, 4), dtype=np.float32))
        with self.assertRaises(IndexError):
            t.read(2, 0)
        with self.assertRaises(IndexError):
            t.read(0)

    def test_squeeze_batch(self) -> None:
        arr = np.arange(8, dtype=np.float32).reshape(1, 2, 4)
        t = RawOutputTensor.from_array("coordinates", arr).squeeze_batch()
        self.assertEqual(t.shape, (2, 4))
        self.assertEqual(t.read(1, 1), 5.0)

    def test_mismatched_strides_rejected(self) -> None:
        with self.assertRaises(ValueError):
            RawOutputTensor(name="x", buffer=np.zeros(8, dtype=np.float32), shape=(2, 4), strides=(4,))


if __name__ == "__main__":
    unittest.main()
