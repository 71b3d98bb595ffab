"""
EXIF based calibration priors.
"""

from typing import Dict, Optional

from PIL import ExifTags, Image

from ..core.structures.camera_intrinsics_prior import CameraIntrinsicsPrior
from ..logger import get_logger

logger = get_logger("features.exif")


EXIF_SUB_IFD = 0x8769

# Width of a 35mm film frame in mm
FILM_35MM_WIDTH = 36.0

# FocalPlaneResolutionUnit -> millimetres per unit
FOCAL_PLANE_UNIT_MM = {
    2: 25.4,   # inch
    3: 10.0,   # centimetre
    4: 1.0,    # millimetre
    5: 0.001,  # micrometre
}


def _named_tags(image: Image.Image) -> Dict[str, object]:
    exif = image.getexif()
    tags = {ExifTags.TAGS.get(tag, tag): value for tag, value in exif.items()}
    for tag, value in exif.get_ifd(EXIF_SUB_IFD).items():
        tags[ExifTags.TAGS.get(tag, tag)] = value
    return tags


def _positive_float(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    return number if number > 0 else None


class ExifReader:
    """Reads image size and focal length priors from image metadata"""

    def extract_exif_metadata(self, image_path: str, prior: CameraIntrinsicsPrior) -> bool:
        """
        Fill a prior from the EXIF data of an image

        The image size is always set. The focal length (in pixels) is set when
        the metadata allows it, from FocalLengthIn35mmFilm or from FocalLength
        together with the focal plane resolution.

        Args:
            image_path: Path of the image
            prior: Prior updated in place

        Returns:
            False if the image could not be opened
        """
        try:
            with Image.open(image_path) as image:
                width, height = image.size
                tags = _named_tags(image)
        except OSError as e:
            logger.warning(f"Could not read metadata of {image_path}: {e}")
            return False

        prior.image_width = width
        prior.image_height = height

        focal_length = self._focal_length_in_pixels(tags, max(width, height))
        if focal_length is not None:
            prior.focal_length.set(focal_length)
            logger.debug(f"EXIF focal length of {image_path}: {focal_length:.1f} px")
        return True

    @staticmethod
    def _focal_length_in_pixels(tags: Dict[str, object], max_dimension: int) -> Optional[float]:
        focal_35mm = _positive_float(tags.get('FocalLengthIn35mmFilm'))
        if focal_35mm is not None:
            return focal_35mm / FILM_35MM_WIDTH * max_dimension

        focal_mm = _positive_float(tags.get('FocalLength'))
        resolution = _positive_float(tags.get('FocalPlaneXResolution'))
        unit_mm = FOCAL_PLANE_UNIT_MM.get(tags.get('FocalPlaneResolutionUnit', 2))
        if focal_mm is None or resolution is None or unit_mm is None:
            return None

        pixels_per_mm = resolution / unit_mm
        return focal_mm * pixels_per_mm
