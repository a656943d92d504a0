#!/usr/bin/env python3
"""
cli.py - Command-line entry point and convenience API for pxmatch
Compares two renders, reports the number of differing pixels and
optionally writes the diff visualisation.
"""

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional, Union

from tabulate import tabulate

from .core import (
    ConfigError,
    MatchConfig,
    MatchResult,
    PixelMatchError,
    compare_arrays,
    VERSION
)
from .imaging import ImageSource, as_rgba_array, save_image

__all__ = [
    'compare_images',
    'compare_files',
    'PixelMatchCLI',
    'main'
]

logger = logging.getLogger(__name__)


def compare_images(before: ImageSource, after: ImageSource,
                   config: MatchConfig = None) -> MatchResult:
    """
    Convenience function to compare two images

    Args:
        before: Path, PIL image or RGBA array of the reference render
        after: Path, PIL image or RGBA array of the candidate render
        config: Optional MatchConfig object

    Returns:
        MatchResult with the diff count and the rendered diff image

    Example:
        >>> result = compare_images('before.png', 'after.png')
        >>> print(f"diff: {result.diff_count}")
    """
    return compare_arrays(as_rgba_array(before), as_rgba_array(after), config)


def compare_files(before_path: Union[str, Path], after_path: Union[str, Path],
                  config: MatchConfig = None,
                  dest: Optional[Union[str, Path]] = None) -> MatchResult:
    """
    Compare two image files and optionally persist the diff image

    Args:
        before_path: Path to the reference image
        after_path: Path to the candidate image
        config: Optional MatchConfig object
        dest: Where to save the diff image; None or "-" skips saving

    Returns:
        MatchResult for the pair
    """
    result = compare_images(before_path, after_path, config)
    if dest is not None and str(dest) != '-':
        save_image(result.diff_image, dest)
    return result


class PixelMatchCLI:
    """Command-line interface for pxmatch with batch support"""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog='pxmatch',
            description='pxmatch - perceptual pixel diff for visual regression checks',
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        parser.add_argument('--version', action='version', version=f'pxmatch v{VERSION}')

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        # Single pair
        diff_parser = subparsers.add_parser('diff', help='Compare two images')
        diff_parser.add_argument('before', help='Path to the reference image')
        diff_parser.add_argument('after', help='Path to the candidate image')
        diff_parser.add_argument('--threshold', type=float, help='Matching threshold in [0, 1] (default 0.1)')
        diff_parser.add_argument('--include-antialiased', dest='include_aa', action='store_true', default=None,
                                 help='Count anti-aliased pixels as differences')
        diff_parser.add_argument('-d', '--dest', default='-',
                                 help='Diff image path, or "-" to print the diff count only')
        self._add_common_arguments(diff_parser)

        # Batch of pairs
        batch_parser = subparsers.add_parser('batch', help='Compare a list of image pairs')
        batch_parser.add_argument('--batch', required=True,
                                  help='Path to JSON list of {"before": path, "after": path, "name": id}')
        batch_parser.add_argument('--out', required=True, help='Output directory for diff images and report')
        self._add_common_arguments(batch_parser)

        # Config command
        config_parser = subparsers.add_parser('config', help='Generate default configuration file')
        config_parser.add_argument('--out', required=True, help='Output path for configuration file')

        return parser

    @staticmethod
    def _add_common_arguments(parser: argparse.ArgumentParser):
        parser.add_argument('--config', help='Path to configuration file')
        parser.add_argument('--serial', action='store_true', help='Disable the parallel kernel')
        parser.add_argument('--threads', type=int, help='Number of worker threads')
        parser.add_argument('--verbose', action='store_true', help='Enable verbose logging')

    def run(self, args=None) -> int:
        args = self.parser.parse_args(args)

        if not args.command:
            self.parser.print_help()
            return 1

        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        if getattr(args, 'verbose', False):
            logging.getLogger().setLevel(logging.DEBUG)

        try:
            if args.command == 'diff':
                return self._diff(args)
            elif args.command == 'batch':
                return self._batch(args)
            elif args.command == 'config':
                return self._generate_config(args)
        except PixelMatchError as e:
            logger.error(f"caused: {e}")
            return e.exit_code
        return 1

    def _load_config(self, args) -> MatchConfig:
        if args.config:
            config = MatchConfig.from_json(args.config)
        else:
            config = MatchConfig()

        # command-line flags win over the config file
        if getattr(args, 'threshold', None) is not None:
            config.threshold = args.threshold
        if getattr(args, 'include_aa', None):
            config.include_antialiased = True
        if args.serial:
            config.parallel = False
        if args.threads is not None:
            config.num_threads = args.threads
        return config.validate()

    def _diff(self, args) -> int:
        config = self._load_config(args)
        logger.debug(f"Comparing {args.before} against {args.after}")
        result = compare_files(args.before, args.after, config, dest=args.dest)
        if args.dest == '-':
            print(f"diff: {result.diff_count}")
        return 0

    def _batch(self, args) -> int:
        config = self._load_config(args)
        try:
            with open(args.batch, 'r') as f:
                batch_list = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read batch list {args.batch}: {e}")
            return 1
        pairs = self._validate_batch(batch_list)
        os.makedirs(args.out, exist_ok=True)

        report = []
        for name, item in pairs:
            logger.info(f"Comparing {item['before']} against {item['after']}")
            start_time = time.time()
            out_path = os.path.join(args.out, f"{name}.png")
            result = compare_files(item['before'], item['after'], config, dest=out_path)
            elapsed = time.time() - start_time
            entry = {'name': name, 'diff_image': out_path}
            entry.update(result.to_dict())
            report.append(entry)
            logger.info(f"{name}: {result.diff_count} pixels differ (took {elapsed:.2f}s)")

        report_path = os.path.join(args.out, 'report.json')
        with open(report_path, 'w') as f:
            json.dump(report, f, indent=2)
        logger.info(f"Batch report saved to {report_path}")

        rows = [[e['name'], f"{e['width']}x{e['height']}", e['diff_count'], f"{e['diff_ratio']:.2%}"]
                for e in report]
        print(tabulate(rows, headers=['Pair', 'Size', 'Diff pixels', 'Diff ratio'], tablefmt='simple'))
        return 0

    @staticmethod
    def _validate_batch(batch_list) -> list:
        """Check every batch entry up front; returns (name, entry) pairs"""
        if not isinstance(batch_list, list):
            raise ConfigError("Batch list must be a JSON array")
        pairs = []
        seen = set()
        for idx, item in enumerate(batch_list):
            if not isinstance(item, dict):
                raise ConfigError(f"Batch entry {idx} must be an object")
            for key in ('before', 'after'):
                if not isinstance(item.get(key), str) or not item[key]:
                    raise ConfigError(f"Batch entry {idx} needs a '{key}' path")
            name = item.get('name') or f"pair_{idx}"
            if (not isinstance(name, str) or name in ('.', '..')
                    or '/' in name or '\\' in name or os.sep in name):
                raise ConfigError(f"Batch entry {idx} has an invalid name: {name!r}")
            if name in seen:
                raise ConfigError(f"Batch entry {idx} repeats name {name!r}")
            seen.add(name)
            pairs.append((name, item))
        return pairs

    def _generate_config(self, args) -> int:
        config = MatchConfig()
        config.to_json(args.out)
        logger.info(f"Default configuration saved to {args.out}")
        return 0


def main():
    cli = PixelMatchCLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
