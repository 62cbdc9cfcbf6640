"""Exceptions raised by the watermark remover."""


class WatermarkError(Exception):
    """Base class for all watermark remover errors"""


class TemplateAssetError(WatermarkError):
    """A template mask is missing, undecodable or has the wrong size.

    Fatal: nothing can be detected or removed without both masks.
    """


class ImageDecodeError(WatermarkError):
    """The uploaded bytes could not be decoded as an image"""


class PlacementError(WatermarkError):
    """A manual placement puts the template window outside the image"""
