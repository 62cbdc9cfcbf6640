#!/usr/bin/env python3
"""
Flask server for the template watermark remover
Serves the single-page frontend and the /upload processing endpoint
"""

import base64
import logging
import os
import secrets
import sys
import threading
import time
import webbrowser

from flask import Flask, current_app, g, jsonify, request, send_from_directory
from flask_cors import CORS

import settings
from errors import ImageDecodeError, PlacementError, TemplateAssetError
from template_masks import MaskRepository
from watermark_service import ACTION_REMOVE, WatermarkService, encode_png, generate_filename

logger = logging.getLogger(__name__)


def _parse_int(value):
    """Form integers: anything unparseable reads as 0."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _parse_threshold(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _send_web_file(filename, mimetype=None, max_age=None):
    web_dir = current_app.config['WEB_DIR']
    if not os.path.isfile(os.path.join(web_dir, filename)):
        return f"Missing {filename}", 404
    response = send_from_directory(web_dir, filename, mimetype=mimetype)
    if max_age is not None:
        response.headers['Cache-Control'] = f'public, max-age={max_age}'
    return response


def create_app(service: WatermarkService, web_dir: str = None) -> Flask:
    """
    Build the Flask app around an already-loaded WatermarkService.

    The service (and the template masks inside it) is shared by all request
    threads and never modified.
    """
    app = Flask(__name__, static_folder=None)
    CORS(app)

    app.config['MAX_CONTENT_LENGTH'] = settings.MAX_CONTENT_LENGTH
    app.config['WEB_DIR'] = web_dir or settings.WEB_DIR
    app.config['WATERMARK_SERVICE'] = service

    @app.before_request
    def _log_request_start():
        if not settings.ENABLE_ACCESS_LOGS:
            return
        g._req_start = time.time()
        g._req_id = secrets.token_hex(4)
        ip = request.headers.get('X-Forwarded-For', request.remote_addr) or '-'
        logger.info("--> %s %s %s from %s", g._req_id, request.method, request.full_path.rstrip('?'), ip)

    @app.after_request
    def _log_request_end(response):
        if settings.ENABLE_ACCESS_LOGS:
            rid = getattr(g, '_req_id', '-')
            dur_ms = int((time.time() - getattr(g, '_req_start', time.time())) * 1000)
            length = response.calculate_content_length() or 0
            logger.info("<-- %s %s %sb %sms %s %s", rid, response.status_code, length, dur_ms,
                        request.method, request.path)
        return response

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        return response

    @app.errorhandler(ImageDecodeError)
    @app.errorhandler(PlacementError)
    def _bad_input(exc):
        logger.warning("Rejected upload: %s", exc)
        return jsonify({'error': str(exc)}), 400

    @app.route('/')
    def index():
        """Serve the main HTML page"""
        return _send_web_file('index.html', mimetype='text/html')

    @app.route('/favicon.ico')
    def favicon():
        return _send_web_file('favicon.ico', mimetype='image/x-icon', max_age=86400)

    @app.route('/lang/<path:path>')
    def serve_lang(path):
        """Serve language files"""
        return send_from_directory(os.path.join(current_app.config['WEB_DIR'], 'lang'), path)

    @app.route('/upload', methods=['POST'])
    def upload():
        """
        Detect / remove the watermark from an uploaded image

        Form fields:
            image: the image file
            action: "remove" (default) or "detect"
            manual_x, manual_y: optional template position override
            threshold: confidence threshold (default 25)

        Returns:
            {filename, data (base64 PNG), status, message, confidence,
             raw_score, box_x, box_y, box_w, box_h}
        """
        file = request.files.get('image')
        if file is None:
            return jsonify({'error': 'Invalid file'}), 400

        svc = current_app.config['WATERMARK_SERVICE']
        action = request.form.get('action') or ACTION_REMOVE

        manual_x = manual_y = None
        if request.form.get('manual_x', '') != '':
            manual_x = _parse_int(request.form.get('manual_x'))
            manual_y = _parse_int(request.form.get('manual_y'))

        threshold = _parse_threshold(request.form.get('threshold'), svc.threshold)

        result = svc.process(file.read(), action, manual_x, manual_y, threshold)

        x, y, w, h = result.box
        return jsonify({
            'filename': generate_filename(file.filename),
            'data': base64.b64encode(encode_png(result.image)).decode('ascii'),
            'status': result.status,
            'message': result.message,
            'confidence': result.confidence,
            'raw_score': result.raw_score,
            'box_x': x,
            'box_y': y,
            'box_w': w,
            'box_h': h,
        })

    @app.route('/api/health', methods=['GET'])
    def health():
        """Health check endpoint"""
        return jsonify({
            'status': 'ok',
            'masks_loaded': current_app.config['WATERMARK_SERVICE'].masks is not None,
        })

    return app


def open_browser(url, delay=1.0):
    """Open the UI in the default browser once the server is up."""
    def _open():
        time.sleep(delay)
        try:
            webbrowser.open(url)
        except webbrowser.Error as exc:
            logger.warning("Could not open browser: %s", exc)

    threading.Thread(target=_open, daemon=True).start()


def main():
    log_level = logging.INFO if settings.ENABLE_ACCESS_LOGS else logging.WARNING
    logging.basicConfig(stream=sys.stdout, level=log_level,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    print("=" * 60)
    print("Template Watermark Remover")
    print("=" * 60)

    try:
        masks = MaskRepository.load()
    except TemplateAssetError as exc:
        logger.error("Error loading masks: %s", exc)
        print(f"❌ Error loading masks: {exc}")
        print("Run create_templates.py to create the template assets")
        return 1

    app = create_app(WatermarkService(masks))

    url = f"http://{'localhost' if settings.HOST in ('127.0.0.1', '0.0.0.0') else settings.HOST}:{settings.PORT}"
    print(f"Server started: {url}")
    print(f"Templates: {settings.ASSETS_DIR}")
    print("=" * 60)

    if settings.OPEN_BROWSER:
        open_browser(url)

    app.run(host=settings.HOST, port=settings.PORT, debug=False, threaded=True)
    return 0


if __name__ == '__main__':
    sys.exit(main())
