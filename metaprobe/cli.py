# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Command-line interface for MetaProbe

Dumps the metadata of JPEG, TIFF, MP3, MIDI and MP4 files as text.
Wildcards in file arguments are expanded by the program.

Copyright 2025 DNAi inc.
"""

import argparse
import logging
import sys
from typing import List, Optional

from metaprobe.config import ProbeConfig
from metaprobe.core import MetaProbe
from metaprobe.output import ProbeOutput


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='metaprobe',
        description="MetaProbe - Dump the metadata structure of media files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Dump EXIF from a photo
  metaprobe photo.jpg

  # Dump every MP3 in a folder, with raw bytes
  metaprobe -v "music/*.mp3"
        """
    )
    parser.add_argument('files', nargs='+', help='File(s) or wildcard pattern(s) to probe')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Print raw dumps and structural detail')
    parser.add_argument('--debug', action='store_true', help='Log decoder diagnostics to stderr')
    parser.add_argument('--max-ifds', type=int, default=ProbeConfig.DEFAULT_MAX_IFD_COUNT,
                        help='Maximum IFDs visited in one TIFF walk')
    parser.add_argument('--max-depth', type=int, default=ProbeConfig.DEFAULT_MAX_BOX_DEPTH,
                        help='Maximum MP4 box nesting depth')
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format='%(levelname)s: %(message)s',
        stream=sys.stderr,
    )

    try:
        config = ProbeConfig(
            verbosity=args.verbose,
            max_ifd_count=args.max_ifds,
            max_box_depth=args.max_depth,
        )
    except ValueError as e:
        parser.error(str(e))

    probe = MetaProbe(ProbeOutput(sys.stdout, config), config)
    failures = probe.probe_files(args.files)
    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
