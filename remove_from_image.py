#!/usr/bin/env python3
"""
Remove the template watermark from image files or whole folders.

    python remove_from_image.py photo.jpg
    python remove_from_image.py ./photos --output-dir ./clean --threshold 30
"""

import argparse
import logging
import os
import sys

from tqdm import tqdm

import settings
from errors import TemplateAssetError, WatermarkError
from template_masks import MaskRepository
from watermark_service import (
    ACTION_DETECT,
    ACTION_REMOVE,
    WatermarkService,
    encode_png,
    generate_filename,
)

IMAGE_EXTS = {'.png', '.jpg', '.jpeg', '.webp', '.bmp', '.tif', '.tiff'}


def collect_images(paths):
    """Expand folders into the image files they contain (non-recursive)."""
    files = []
    for path in paths:
        if os.path.isdir(path):
            for name in sorted(os.listdir(path)):
                if os.path.splitext(name)[1].lower() in IMAGE_EXTS:
                    files.append(os.path.join(path, name))
        else:
            files.append(path)
    return files


def output_path_for(image_path, output_dir=None):
    """Results are always PNG so the restored pixels survive unchanged."""
    stem = os.path.splitext(generate_filename(os.path.basename(image_path)))[0]
    directory = output_dir or os.path.dirname(image_path)
    return os.path.join(directory, stem + '.png')


def process_file(service, image_path, args):
    with open(image_path, 'rb') as f:
        data = f.read()

    action = ACTION_DETECT if args.detect_only else ACTION_REMOVE
    result = service.process(data, action, args.manual_x, args.manual_y, args.threshold)

    out_path = None
    if result.removed:
        out_path = output_path_for(image_path, args.output_dir)
        with open(out_path, 'wb') as f:
            f.write(encode_png(result.image))
    return result, out_path


def build_parser():
    parser = argparse.ArgumentParser(description="Remove the template watermark from images")
    parser.add_argument('paths', nargs='+', help="Image files or folders")
    parser.add_argument('--output-dir', help="Where to write results (default: next to the input)")
    parser.add_argument('--threshold', type=float, default=settings.DEFAULT_THRESHOLD,
                        help="Confidence threshold 0-100 (default: %(default)s)")
    parser.add_argument('--manual-x', type=int, default=None,
                        help="Template x position; skips detection")
    parser.add_argument('--manual-y', type=int, default=0, help="Template y position")
    parser.add_argument('--detect-only', action='store_true', help="Only report confidence")
    parser.add_argument('--assets-dir', default=None,
                        help="Folder with bg_48.png / bg_96.png (default: %s)" % settings.ASSETS_DIR)
    parser.add_argument('-v', '--verbose', action='store_true', help="Debug logging")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(stream=sys.stdout, level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    try:
        masks = MaskRepository.load(args.assets_dir)
    except TemplateAssetError as exc:
        print(f"❌ {exc}")
        print("Run create_templates.py first")
        return 1

    service = WatermarkService(masks, threshold=args.threshold)

    if args.output_dir:
        os.makedirs(args.output_dir, exist_ok=True)

    files = collect_images(args.paths)
    if not files:
        print("No images found!")
        return 1

    removed = 0
    failed = 0
    for image_path in tqdm(files, disable=len(files) < 2):
        try:
            result, out_path = process_file(service, image_path, args)
        except (OSError, WatermarkError) as exc:
            failed += 1
            tqdm.write(f"✗ {image_path}: {exc}")
            continue

        if out_path:
            removed += 1
            tqdm.write(f"✓ {image_path} -> {out_path} ({result.confidence:.0f}%)")
        else:
            tqdm.write(f"- {image_path}: {result.message}")

    print(f"\nProcessed {len(files)} image(s): {removed} cleaned, {failed} failed")
    return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main())
