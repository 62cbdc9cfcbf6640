import base64
import io
import tempfile
import os
import unittest

import numpy as np

from alpha_removal import apply_watermark
from create_templates import render_sparkle
from server import create_app
from template_masks import LARGE_SIZE, SMALL_SIZE, MaskRepository, TemplateMask
from watermark_service import WatermarkService, decode_image, encode_png


def make_app(web_dir=None):
    masks = MaskRepository(
        small=TemplateMask.from_image(render_sparkle(SMALL_SIZE)),
        large=TemplateMask.from_image(render_sparkle(LARGE_SIZE)),
    )
    app = create_app(WatermarkService(masks), web_dir=web_dir)
    app.config['TESTING'] = True
    return app


def watermarked_png(width=300, height=300):
    image = np.empty((height, width, 4), dtype=np.uint8)
    image[:, :, :3] = 90
    image[:, :, 3] = 255
    mask = TemplateMask.from_image(render_sparkle(SMALL_SIZE))
    apply_watermark(image, mask, width - 48 - 32, height - 48 - 32)
    return encode_png(image)


class TestUpload(unittest.TestCase):
    def setUp(self):
        self.client = make_app().test_client()

    def post(self, png, filename='photo.jpg', **fields):
        data = {'image': (io.BytesIO(png), filename)}
        data.update(fields)
        return self.client.post('/upload', data=data, content_type='multipart/form-data')

    def test_remove(self):
        resp = self.post(watermarked_png())
        self.assertEqual(resp.status_code, 200)
        body = resp.get_json()
        self.assertEqual(body['status'], 'success')
        self.assertEqual(body['filename'], 'photo_RemoveWatermark.jpg')
        self.assertGreaterEqual(body['confidence'], 25.0)
        self.assertEqual((body['box_x'], body['box_y'], body['box_w'], body['box_h']), (220, 220, 48, 48))

        image = decode_image(base64.b64decode(body['data']))
        self.assertEqual(image.shape, (300, 300, 4))
        self.assertLessEqual(int(np.abs(image[:, :, :3].astype(int) - 90).max()), 1)

    def test_detect_returns_unmodified_image(self):
        png = watermarked_png()
        body = self.post(png, action='detect').get_json()
        self.assertEqual(body['status'], 'success')
        np.testing.assert_array_equal(decode_image(base64.b64decode(body['data'])), decode_image(png))

    def test_low_confidence_skipped(self):
        image = np.full((300, 300, 4), 90, dtype=np.uint8)
        body = self.post(encode_png(image)).get_json()
        self.assertEqual(body['status'], 'skipped')
        self.assertEqual(body['confidence'], 0.0)

    def test_threshold_field(self):
        body = self.post(watermarked_png(), threshold='101').get_json()
        self.assertEqual(body['status'], 'skipped')

    def test_unparseable_threshold_uses_default(self):
        body = self.post(watermarked_png(), threshold='lots').get_json()
        self.assertEqual(body['status'], 'success')

    def test_manual_placement(self):
        image = np.zeros((300, 300, 4), dtype=np.uint8)
        body = self.post(encode_png(image), manual_x='5', manual_y='7').get_json()
        self.assertEqual(body['confidence'], 100.0)
        self.assertEqual((body['box_x'], body['box_y']), (5, 7))

    def test_unparseable_manual_x_reads_as_zero(self):
        image = np.zeros((300, 300, 4), dtype=np.uint8)
        body = self.post(encode_png(image), manual_x='left', manual_y='').get_json()
        self.assertEqual(body['confidence'], 100.0)
        self.assertEqual((body['box_x'], body['box_y']), (0, 0))

    def test_manual_placement_outside_image(self):
        resp = self.post(encode_png(np.zeros((100, 100, 4), dtype=np.uint8)), manual_x='90', manual_y='0')
        self.assertEqual(resp.status_code, 400)
        self.assertIn('error', resp.get_json())

    def test_no_placement(self):
        body = self.post(encode_png(np.zeros((50, 50, 4), dtype=np.uint8)), threshold='0').get_json()
        self.assertEqual(body['status'], 'no_placement')
        self.assertEqual(body['confidence'], 0.0)

    def test_missing_file(self):
        resp = self.client.post('/upload', data={'action': 'remove'}, content_type='multipart/form-data')
        self.assertEqual(resp.status_code, 400)

    def test_undecodable_file(self):
        resp = self.post(b'not an image', filename='broken.png')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()['error'], 'Decode failed')


class TestStaticRoutes(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        web_dir = self._tmp.name
        os.makedirs(os.path.join(web_dir, 'lang'))
        with open(os.path.join(web_dir, 'index.html'), 'w') as f:
            f.write('<html>remover</html>')
        with open(os.path.join(web_dir, 'lang', 'en.json'), 'w') as f:
            f.write('{"title": "Watermark Remover"}')
        self.web_dir = web_dir
        self.client = make_app(web_dir).test_client()

    def tearDown(self):
        self._tmp.cleanup()

    def test_index(self):
        resp = self.client.get('/')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'remover', resp.data)
        self.assertTrue(resp.content_type.startswith('text/html'))
        resp.close()

    def test_lang(self):
        resp = self.client.get('/lang/en.json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()['title'], 'Watermark Remover')
        resp.close()

    def test_missing_lang(self):
        self.assertEqual(self.client.get('/lang/xx.json').status_code, 404)

    def test_favicon(self):
        self.assertEqual(self.client.get('/favicon.ico').status_code, 404)
        with open(os.path.join(self.web_dir, 'favicon.ico'), 'wb') as f:
            f.write(b'\x00\x00\x01\x00')
        resp = self.client.get('/favicon.ico')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers['Cache-Control'], 'public, max-age=86400')
        self.assertEqual(resp.content_type, 'image/x-icon')
        resp.close()

    def test_missing_index(self):
        os.remove(os.path.join(self.web_dir, 'index.html'))
        self.assertEqual(self.client.get('/').status_code, 404)

    def test_health(self):
        body = self.client.get('/api/health').get_json()
        self.assertEqual(body, {'status': 'ok', 'masks_loaded': True})


if __name__ == '__main__':
    unittest.main()
