"""
Image optimization for the site build.

Source images are re-encoded into the output images directory, sorted into
team/services/icons subdirectories, and given a WebP sibling.
"""

import logging
import os
import shutil
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png')
CATEGORY_SUBDIRS = ('team', 'services', 'icons')

# Keyword looked for in the file name or relative path -> target subdirectory
CATEGORY_KEYWORDS = (
    ('team', 'team'),
    ('service', 'services'),
    ('icon', 'icons'),
)


class OptimizedImage:
    """Paths and sizes for one processed image."""

    def __init__(self, original_path, optimized_path, webp_path, original_size, optimized_size):
        self.original_path = original_path
        self.optimized_path = optimized_path
        self.webp_path = webp_path
        self.original_size = original_size
        self.optimized_size = optimized_size

    @property
    def savings(self) -> float:
        """Percentage saved by optimization, 0 for empty originals."""
        if not self.original_size:
            return 0.0
        return (1 - self.optimized_size / self.original_size) * 100


class ImageProcessingResult:
    def __init__(self):
        self.processed: List[OptimizedImage] = []
        self.failed: List[str] = []
        self.warnings: List[str] = []


class ImageProcessor:
    def __init__(self, generate_webp=True, quality=85, excluded_dirs=('firmati',)):
        self.generate_webp = generate_webp
        self.quality = quality
        self.excluded_dirs = {name.lower() for name in excluded_dirs}
        self.logger = logging.getLogger('Pressmark.ImageProcessor')

    def find_image_files(self, source_dir) -> List[str]:
        """List images in the top level of source_dir; subdirectories are not scanned."""
        if not os.path.isdir(source_dir):
            return []

        image_files = []
        for entry in sorted(os.scandir(source_dir), key=lambda e: e.name):
            if entry.is_dir():
                if entry.name.lower() in self.excluded_dirs:
                    self.logger.debug(f"Skipping excluded directory: {entry.name}")
                continue
            if entry.is_file() and os.path.splitext(entry.name)[1].lower() in IMAGE_EXTENSIONS:
                image_files.append(entry.path)
        return image_files

    def categorize(self, image_path, source_dir) -> str:
        """Return the subdirectory an image belongs in, or '' for the images root."""
        relative = os.path.relpath(image_path, source_dir).lower()
        for keyword, subdir in CATEGORY_KEYWORDS:
            if keyword in relative:
                return subdir
        return ''

    def validate_image_integrity(self, image_path) -> bool:
        """True if Pillow can read the image and it has a non-zero size."""
        try:
            with Image.open(image_path) as img:
                img.verify()
            with Image.open(image_path) as img:
                width, height = img.size
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
            return False
        return width > 0 and height > 0

    def optimize_jpeg(self, input_path, output_path):
        with Image.open(input_path) as img:
            if img.mode not in ('RGB', 'L'):
                img = img.convert('RGB')
            img.save(output_path, 'JPEG', quality=self.quality, progressive=True, optimize=True)

    def optimize_png(self, input_path, output_path):
        with Image.open(input_path) as img:
            img.save(output_path, 'PNG', optimize=True, compress_level=9)

    def generate_webp_image(self, input_path, output_path):
        with Image.open(input_path) as img:
            img.save(output_path, 'WEBP', quality=self.quality, method=6)

    def process_image(self, image_path, source_dir, target_dir) -> OptimizedImage:
        """
        Optimize one image into target_dir and write its WebP version.

        Raises OSError if the image cannot be read or written.
        """
        if not os.path.exists(image_path):
            raise FileNotFoundError(f"Image file not found: {image_path}")

        filename = os.path.basename(image_path)
        basename, ext = os.path.splitext(filename)
        ext = ext.lower()

        subdir = self.categorize(image_path, source_dir)
        output_dir = os.path.join(target_dir, subdir) if subdir else target_dir
        os.makedirs(output_dir, exist_ok=True)
        optimized_path = os.path.join(output_dir, filename)
        webp_path = os.path.join(output_dir, basename + '.webp')

        original_size = os.path.getsize(image_path)

        if ext in ('.jpg', '.jpeg'):
            self.optimize_jpeg(image_path, optimized_path)
        elif ext == '.png':
            self.optimize_png(image_path, optimized_path)
        else:
            shutil.copy2(image_path, optimized_path)
        optimized_size = os.path.getsize(optimized_path)

        if self.generate_webp and ext in IMAGE_EXTENSIONS:
            try:
                self.generate_webp_image(image_path, webp_path)
            except (OSError, ValueError) as e:
                self.logger.warning(f"Failed to generate WebP for {image_path}: {e}")
                webp_path = None
        else:
            webp_path = None

        return OptimizedImage(image_path, optimized_path, webp_path, original_size, optimized_size)

    def process_images(self, source_dir, target_dir) -> ImageProcessingResult:
        """Process every image in source_dir; failures are recorded, not raised."""
        result = ImageProcessingResult()

        if not os.path.isdir(source_dir):
            message = f"Source path does not exist: {source_dir}"
            result.warnings.append(message)
            self.logger.warning(message)
            return result

        for subdir in CATEGORY_SUBDIRS:
            os.makedirs(os.path.join(target_dir, subdir), exist_ok=True)

        for image_path in self.find_image_files(source_dir):
            if not self.validate_image_integrity(image_path):
                message = f"Image is corrupted or invalid: {image_path}"
                result.failed.append(image_path)
                result.warnings.append(message)
                self.logger.warning(message)
                continue

            try:
                optimized = self.process_image(image_path, source_dir, target_dir)
            except (OSError, ValueError) as e:
                message = f"Failed to process image {image_path}: {e}"
                result.failed.append(image_path)
                result.warnings.append(message)
                self.logger.warning(message)
                continue

            result.processed.append(optimized)
            self.logger.debug(f"Optimized {image_path} ({optimized.savings:.1f}% smaller)")

        self.logger.info(
            f"Image processing complete: {len(result.processed)} succeeded, {len(result.failed)} failed"
        )
        return result


def webp_variant(image_path: str) -> Optional[str]:
    """Return the .webp path for a JPEG/PNG reference, or None for other formats."""
    root, ext = os.path.splitext(image_path)
    if ext.lower() in IMAGE_EXTENSIONS:
        return root + '.webp'
    return None
