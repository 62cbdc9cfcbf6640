import os
import tempfile
import unittest

import cv2
import numpy as np

from create_templates import render_sparkle, write_sparkle_templates
from errors import TemplateAssetError
from template_masks import (
    LARGE_MARGIN,
    LARGE_SIZE,
    SMALL_MARGIN,
    SMALL_SIZE,
    MaskRepository,
    TemplateMask,
    effective_alpha,
)


class TestEffectiveAlpha(unittest.TestCase):
    def test_opaque_gray_uses_color(self):
        gray = np.array([[0, 51], [204, 255]], dtype=np.uint8)
        np.testing.assert_allclose(effective_alpha(gray), gray / 255.0)

    def test_opaque_bgr_uses_red(self):
        bgr = np.zeros((1, 1, 3), dtype=np.uint8)
        bgr[0, 0] = (10, 20, 200)
        self.assertAlmostEqual(effective_alpha(bgr)[0, 0], 200 / 255.0)

    def test_native_alpha_used_when_not_saturated(self):
        bgra = np.zeros((1, 1, 4), dtype=np.uint8)
        bgra[0, 0] = (255, 255, 255, 128)
        self.assertAlmostEqual(effective_alpha(bgra)[0, 0], 128 / 255.0)

    def test_saturated_alpha_reads_red_premultiplied(self):
        bgra = np.zeros((1, 2, 4), dtype=np.uint8)
        bgra[0, 0] = (0, 0, 200, 255)
        bgra[0, 1] = (0, 0, 200, 254)
        alpha = effective_alpha(bgra)
        self.assertAlmostEqual(alpha[0, 0], 200 / 255.0)
        self.assertAlmostEqual(alpha[0, 1], (200 / 255.0) * (254 / 255.0))

    def test_sixteen_bit(self):
        bgra = np.zeros((1, 1, 4), dtype=np.uint16)
        bgra[0, 0] = (0, 0, 0, 32768)
        self.assertAlmostEqual(effective_alpha(bgra)[0, 0], 32768 / 65535.0)


class TestTemplateMask(unittest.TestCase):
    def test_derived_fields(self):
        mask = TemplateMask.from_image(render_sparkle(SMALL_SIZE))
        self.assertEqual((mask.width, mask.height), (SMALL_SIZE, SMALL_SIZE))
        self.assertEqual(mask.alpha.shape, (SMALL_SIZE, SMALL_SIZE))
        self.assertEqual(mask.alpha_field.shape, (SMALL_SIZE * SMALL_SIZE,))
        self.assertEqual(mask.gradient.shape, (SMALL_SIZE * SMALL_SIZE,))
        np.testing.assert_allclose(mask.alpha_field, mask.alpha.reshape(-1) * 255.0)

        grad = mask.gradient.reshape(SMALL_SIZE, SMALL_SIZE)
        self.assertTrue(np.all(grad[0] == 0) and np.all(grad[-1] == 0))
        self.assertTrue(np.all(grad[:, 0] == 0) and np.all(grad[:, -1] == 0))
        self.assertGreater(grad.max(), 0)

    def test_arrays_are_read_only(self):
        mask = TemplateMask.from_image(render_sparkle(SMALL_SIZE))
        with self.assertRaises(ValueError):
            mask.alpha[0, 0] = 1.0
        with self.assertRaises(ValueError):
            mask.alpha_field[0] = 1.0
        with self.assertRaises(ValueError):
            mask.gradient[0] = 1.0


class TestMaskRepository(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.assets_dir = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def test_load(self):
        write_sparkle_templates(self.assets_dir)
        masks = MaskRepository.load(self.assets_dir)
        self.assertEqual(masks.small.width, SMALL_SIZE)
        self.assertEqual(masks.large.width, LARGE_SIZE)

    def test_missing_template_is_fatal(self):
        with self.assertRaises(TemplateAssetError):
            MaskRepository.load(self.assets_dir)

    def test_missing_large_template_is_fatal(self):
        write_sparkle_templates(self.assets_dir)
        os.remove(os.path.join(self.assets_dir, 'bg_96.png'))
        with self.assertRaises(TemplateAssetError):
            MaskRepository.load(self.assets_dir)

    def test_undecodable_template_is_fatal(self):
        write_sparkle_templates(self.assets_dir)
        with open(os.path.join(self.assets_dir, 'bg_48.png'), 'wb') as f:
            f.write(b'not an image')
        with self.assertRaises(TemplateAssetError):
            MaskRepository.load(self.assets_dir)

    def test_wrong_size_is_fatal(self):
        write_sparkle_templates(self.assets_dir)
        cv2.imwrite(os.path.join(self.assets_dir, 'bg_96.png'), render_sparkle(64))
        with self.assertRaises(TemplateAssetError):
            MaskRepository.load(self.assets_dir)

    def test_select(self):
        masks = MaskRepository(
            small=TemplateMask.from_image(render_sparkle(SMALL_SIZE)),
            large=TemplateMask.from_image(render_sparkle(LARGE_SIZE)),
        )
        cases = [
            ((1025, 1025), masks.large, LARGE_MARGIN),
            ((2000, 2000), masks.large, LARGE_MARGIN),
            ((1024, 2000), masks.small, SMALL_MARGIN),
            ((2000, 1024), masks.small, SMALL_MARGIN),
            ((500, 500), masks.small, SMALL_MARGIN),
        ]
        for size, expected_mask, expected_margin in cases:
            mask, margin = masks.select(*size)
            self.assertIs(mask, expected_mask, size)
            self.assertEqual(margin, expected_margin, size)


if __name__ == '__main__':
    unittest.main()
