import unittest

import numpy as np

from scan_kit.errors import ImageConversionFailure
from scan_kit.letterbox import as_bgr, letterbox, unletterbox_box, unletterbox_detection
from scan_kit.types import Box, Detection


class TestLetterbox(unittest.TestCase):
    def test_fit_pads_wide_images_top_and_bottom(self) -> None:
        img = np.full((320, 640, 3), 255, dtype=np.uint8)
        lb = letterbox(img, new_shape=(640, 640))
        self.assertEqual(lb.image.shape, (640, 640, 3))
        self.assertEqual(lb.ratio, (1.0, 1.0))
        self.assertEqual(lb.pad, (0.0, 160.0))
        self.assertEqual(lb.orig_size, (640, 320))
        # Padding is empty (black), content is untouched.
        self.assertEqual(int(lb.image[0, 0, 0]), 0)
        self.assertEqual(int(lb.image[320, 320, 0]), 255)

    def test_fit_scales_down(self) -> None:
        img = np.zeros((1280, 960, 3), dtype=np.uint8)
        lb = letterbox(img, new_shape=(640, 640))
        self.assertEqual(lb.image.shape, (640, 640, 3))
        self.assertEqual(lb.ratio, (0.5, 0.5))
        self.assertEqual(lb.pad, (80.0, 0.0))

    def test_fill_stretches(self) -> None:
        img = np.zeros((320, 640, 3), dtype=np.uint8)
        lb = letterbox(img, new_shape=(640, 640), scale_fill=True)
        self.assertEqual(lb.image.shape, (640, 640, 3))
        self.assertEqual(lb.ratio, (1.0, 2.0))
        self.assertEqual(lb.pad, (0.0, 0.0))

    def test_unletterbox_box(self) -> None:
        img = np.zeros((320, 640, 3), dtype=np.uint8)
        lb = letterbox(img, new_shape=(640, 640))
        # Canvas rows 160..480 hold the image.
        box = unletterbox_box(Box(0.0, 0.25, 0.5, 0.5), lb)
        self.assertAlmostEqual(box.x, 0.0)
        self.assertAlmostEqual(box.y, 0.0)
        self.assertAlmostEqual(box.width, 0.5)
        self.assertAlmostEqual(box.height, 1.0)

    def test_unletterbox_detection_drops_padding_only_boxes(self) -> None:
        img = np.zeros((320, 640, 3), dtype=np.uint8)
        lb = letterbox(img, new_shape=(640, 640))
        in_padding = Detection(label="x", x=0.1, y=0.0, width=0.2, height=0.2, confidence=0.9)
        self.assertIsNone(unletterbox_detection(in_padding, lb))
        inside = Detection(label="x", x=0.1, y=0.3, width=0.2, height=0.2, confidence=0.9)
        mapped = unletterbox_detection(inside, lb)
        self.assertIsNotNone(mapped)
        self.assertEqual(mapped.id, inside.id)
        self.assertAlmostEqual(mapped.y, (0.3 * 640 - 160) / 320)


class TestAsBgr(unittest.TestCase):
    def test_grayscale_and_bgra(self) -> None:
        self.assertEqual(as_bgr(np.zeros((4, 5), dtype=np.uint8)).shape, (4, 5, 3))
        self.assertEqual(as_bgr(np.zeros((4, 5, 1), dtype=np.uint8)).shape, (4, 5, 3))
        self.assertEqual(as_bgr(np.zeros((4, 5, 4), dtype=np.uint8)).shape, (4, 5, 3))

    def test_float_images_rescaled(self) -> None:
        out = as_bgr(np.full((2, 2, 3), 0.5, dtype=np.float32))
        self.assertEqual(out.dtype, np.uint8)
        self.assertEqual(int(out[0, 0, 0]), 127)

    def test_sixteen_bit_images_scaled_down(self) -> None:
        img = np.zeros((2, 2, 3), dtype=np.uint16)
        img[0, 0] = (257, 32896, 65535)
        out = as_bgr(img)
        self.assertEqual(out.dtype, np.uint8)
        self.assertEqual(tuple(int(v) for v in out[0, 0]), (1, 128, 255))
        self.assertEqual(int(out[1, 1, 0]), 0)

    def test_rejects_bad_input(self) -> None:
        with self.assertRaises(ImageConversionFailure):
            as_bgr(None)
        with self.assertRaises(ImageConversionFailure):
            as_bgr(np.zeros((0, 0, 3), dtype=np.uint8))
        with self.assertRaises(ImageConversionFailure):
            as_bgr(np.zeros((4, 4, 2), dtype=np.uint8))


if __name__ == "__main__":
    unittest.main()
