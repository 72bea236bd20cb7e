#!/usr/bin/env python3
"""
Command-line interface for Pressmark.

``pressmark`` builds the site into the output directory.
``pressmark-sri`` adds SRI hashes to existing HTML files in place.
"""

import os
import sys
import time
import argparse
from typing import List, Optional

from . import __version__
from .core import Pressmark, setup_logging
from .settings import PressmarkSettings
from .sri import SUPPORTED_ALGORITHMS, ResourceFetcher, process_html_for_sri, validate_algorithm


def process_sri_file(file_path: str, algorithm: str = 'sha384', dry_run: bool = False,
                     skip_fetch: bool = False, fetcher: Optional[ResourceFetcher] = None) -> bool:
    """
    Add SRI hashes to one HTML file.

    The file is rewritten only when the HTML changed and this is not a dry
    run. Returns False if the file is missing or cannot be read or written.
    """
    print(f"\nProcessing: {file_path}")

    if not os.path.exists(file_path):
        print(f"   File not found: {file_path}")
        return False

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            html = f.read()
    except (IOError, OSError, UnicodeDecodeError) as e:
        print(f"   Failed to read file: {e}")
        return False
    print(f"   Read file ({len(html)} bytes)")

    result = process_html_for_sri(html, algorithm, skip_fetch=skip_fetch, fetcher=fetcher)

    if not result.modified:
        if result.failed:
            print(f"   Could not generate SRI hashes for {len(result.failed)} resource(s)")
        else:
            print("   No external resources found or already have SRI hashes")
        return True

    print("\n   Summary:")
    print(f"   - Scripts: {len(result.resources.scripts)}")
    print(f"   - Stylesheets: {len(result.resources.stylesheets)}")
    print(f"   - SRI hashes generated: {len(result.succeeded)}")
    if result.failed:
        print(f"   - SRI hashes failed: {len(result.failed)}")

    if dry_run:
        print("\n   Dry run mode - no changes written")
        print("\n   Generated hashes:")
        for url in result.succeeded:
            print(f"   {url}")
            print(f"   -> {result.hashes[url]}\n")
        return True

    try:
        with open(file_path, 'w', encoding='utf-8') as f:
            f.write(result.html)
    except (IOError, OSError) as e:
        print(f"   Failed to write file: {e}")
        return False

    print("   Updated file with SRI hashes")
    return True


def sri_main(argv: Optional[List[str]] = None) -> int:
    """Entry point for ``pressmark-sri``."""
    parser = argparse.ArgumentParser(
        prog='pressmark-sri',
        description='Add Subresource Integrity (SRI) hashes to external resources in HTML files.',
    )
    parser.add_argument('files', nargs='*',
                        help='HTML files to process (default: configured sri_files in the source directory)')
    parser.add_argument('-d', '--dry-run', action='store_true',
                        help='Show what would be changed without modifying files')
    parser.add_argument('-a', '--algorithm', choices=SUPPORTED_ALGORITHMS,
                        help='Hash algorithm (default: sha384)')
    parser.add_argument('--skip-fetch', action='store_true',
                        help='Only list external resources, do not fetch or hash them')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    args = parser.parse_args(argv)

    settings_loader = PressmarkSettings()
    settings_loader.load_settings()
    settings = settings_loader.merge_with_args({'sri_algorithm': args.algorithm})

    try:
        algorithm = validate_algorithm(settings['sri_algorithm'])
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging('Pressmark')
    file_paths = args.files or [os.path.join(settings['source'], name) for name in settings['sri_files']]

    print("Adding SRI Hashes to HTML Files")
    print(f"   Algorithm: {algorithm}")
    print(f"   Dry run: {'Yes' if args.dry_run else 'No'}")
    if not args.files:
        print(f"\n   Processing default files: {', '.join(settings['sri_files'])}")

    fetcher = ResourceFetcher(timeout=settings['request_timeout'], workers=settings['sri_workers'])
    all_success = True
    try:
        for file_path in file_paths:
            if not process_sri_file(file_path, algorithm, args.dry_run, args.skip_fetch, fetcher):
                all_success = False
    finally:
        fetcher.close()

    if all_success:
        print("\nAll files processed successfully!")
        return 0

    print("\nSome files failed to process")
    return 1


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description='Pressmark - Static Site Build Pipeline')
    parser.add_argument('--output', type=str,
                        help='Output directory for the built site')
    parser.add_argument('--source', type=str,
                        help='Source directory containing css/, js/ and the content file')
    parser.add_argument('--content', type=str,
                        help='YAML content file, relative to the source directory')
    parser.add_argument('--templates', type=str,
                        help='Templates directory (default: bundled templates)')
    parser.add_argument('--images-source', type=str,
                        help='Directory with the original images to optimize')
    parser.add_argument('--minify', action='store_true', default=None,
                        help='Write minified .min.css/.min.js versions')
    parser.add_argument('--no-sri', dest='sri', action='store_false', default=None,
                        help='Do not add SRI hashes to external resources')
    parser.add_argument('--algorithm', dest='sri_algorithm', choices=SUPPORTED_ALGORITHMS,
                        help='SRI hash algorithm')
    parser.add_argument('--init', type=str, choices=['yml', 'yaml', 'json'],
                        help='Create a sample configuration file')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    args = parser.parse_args(argv)

    if args.init:
        settings_loader = PressmarkSettings()
        config_path = settings_loader.create_sample_config(args.init)
        print(f"Created sample configuration file: {config_path}")
        return

    settings_loader = PressmarkSettings()
    settings_loader.load_settings()

    args_dict = {k: v for k, v in vars(args).items() if v is not None and k != 'init'}
    final_settings = settings_loader.merge_with_args(args_dict)

    overall_start_time = time.time()

    try:
        with Pressmark.from_settings(final_settings) as builder:
            builder.build()
            builder.log_statistics(time.time() - overall_start_time)
    except (ValueError, FileNotFoundError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def run_sri() -> None:
    sys.exit(sri_main())


if __name__ == '__main__':
    main()
