"""
Runtime configuration for the template watermark remover.
Everything here can be overridden through environment variables.
"""

import os

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))

# Template assets (bg_48.png / bg_96.png), created with create_templates.py
ASSETS_DIR = os.getenv('WATERMARK_ASSETS_DIR', os.path.join(SCRIPT_DIR, 'assets'))
SMALL_MASK_FILE = 'bg_48.png'
LARGE_MASK_FILE = 'bg_96.png'

# Static frontend (index.html, favicon.ico, lang/*.json)
WEB_DIR = os.path.join(SCRIPT_DIR, 'web')

# Detection
DEFAULT_THRESHOLD = float(os.getenv('WATERMARK_THRESHOLD', '25.0'))

# Colour of the overlay that was blended onto the photo (pure white)
OVERLAY_VALUE = float(os.getenv('WATERMARK_OVERLAY_VALUE', '255'))

# Server
HOST = os.getenv('HOST', '127.0.0.1')
PORT = int(os.getenv('PORT', 8080))
MAX_CONTENT_LENGTH = 50 * 1024 * 1024  # 50MB

OPEN_BROWSER = str(os.getenv('OPEN_BROWSER', '1')).lower() in ('1', 'true', 'yes', 'on')

# Toggle per-request access logs with ACCESS_LOGS=1 (default disabled)
ENABLE_ACCESS_LOGS = str(os.getenv('ACCESS_LOGS', '0')).lower() in ('1', 'true', 'yes', 'on')
