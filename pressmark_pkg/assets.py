"""CSS and JavaScript copying and minification for the dist directory."""

import logging
import os
from typing import List

import csscompressor
import rjsmin


class MinifiedAsset:
    def __init__(self, name, output_path, original_size, minified_path=None, minified_size=None):
        self.name = name
        self.output_path = output_path
        self.original_size = original_size
        self.minified_path = minified_path
        self.minified_size = minified_size

    @property
    def savings(self) -> float:
        if not self.original_size or self.minified_size is None:
            return 0.0
        return (1 - self.minified_size / self.original_size) * 100


class AssetMinifier:
    """Copy configured CSS/JS files into the output tree, optionally with .min versions."""

    def __init__(self, source_dir, output_dir, minify=False):
        self.source_dir = source_dir
        self.output_dir = output_dir
        self.minify = minify
        self.logger = logging.getLogger('Pressmark.AssetMinifier')

    @staticmethod
    def minified_name(filename):
        root, ext = os.path.splitext(filename)
        return f"{root}.min{ext}"

    def process_css_files(self, filenames) -> List[MinifiedAsset]:
        return self._process(filenames, 'css', csscompressor.compress)

    def process_js_files(self, filenames) -> List[MinifiedAsset]:
        return self._process(filenames, 'js', rjsmin.jsmin)

    def _process(self, filenames, kind, minifier) -> List[MinifiedAsset]:
        source_dir = os.path.join(self.source_dir, kind)
        output_dir = os.path.join(self.output_dir, kind)
        processed = []

        for filename in filenames:
            input_path = os.path.join(source_dir, filename)
            if not os.path.exists(input_path):
                self.logger.warning(f"{kind.upper()} file not found: {filename}")
                continue

            try:
                with open(input_path, 'r', encoding='utf-8') as f:
                    content = f.read()

                os.makedirs(output_dir, exist_ok=True)
                output_path = os.path.join(output_dir, filename)
                with open(output_path, 'w', encoding='utf-8') as f:
                    f.write(content)
                asset = MinifiedAsset(filename, output_path, len(content))
                self.logger.debug(f"Copied {filename} ({len(content)} bytes)")

                if self.minify:
                    minified = minifier(content)
                    asset.minified_path = os.path.join(output_dir, self.minified_name(filename))
                    asset.minified_size = len(minified)
                    with open(asset.minified_path, 'w', encoding='utf-8') as f:
                        f.write(minified)
                    self.logger.info(
                        f"Minified {filename} -> {os.path.basename(asset.minified_path)} "
                        f"({asset.minified_size} bytes, {asset.savings:.1f}% smaller)"
                    )
            except (IOError, OSError, UnicodeDecodeError) as e:
                self.logger.error(f"Failed to process {kind.upper()} file {filename}: {e}")
                continue

            processed.append(asset)

        return processed
