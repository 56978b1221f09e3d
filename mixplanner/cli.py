"""
Command-line interface.

Usage:
    python -m mixplanner --out /path/to/mixed.flac in1.m4a in2.m4a [...]
"""

import argparse
import logging
from typing import List, Optional

from mixplanner.config import LOG_LEVELS, MixConfig
from mixplanner.errors import ConfigurationError, MixError
from mixplanner.logging_setup import configure_logging
from mixplanner.mixer.service import MixPlanner
from mixplanner.planner.request import DurationPolicy, build_request

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def _parse_weights(raw: Optional[str]) -> Optional[List[float]]:
    if raw is None:
        return None
    try:
        return [float(w) for w in raw.replace(",", " ").split()]
    except ValueError:
        raise ConfigurationError(f"Invalid --weights {raw!r} (expected numbers like 1.0,0.5)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mixplanner",
        description="Mix several audio files into one FLAC or M4A/AAC file.",
    )
    parser.add_argument("inputs", nargs="+", help="Input audio files; the first defines the reference format")
    parser.add_argument("--out", required=True, help="Output file (.flac, .m4a, .mp4 or .aac)")
    parser.add_argument("--weights", help="Per-input gains, comma separated (e.g. 1.0,0.5)")
    parser.add_argument(
        "--duration",
        choices=[p.value for p in DurationPolicy],
        default=DurationPolicy.LONGEST.value,
        help="Output length policy (default: longest)",
    )
    parser.add_argument("--no-normalize", action="store_true", help="Sum inputs without normalizing by weight")
    parser.add_argument("--quality", help="FLAC compression level (0-12) or AAC bitrate (e.g. 192k)")
    parser.add_argument("--manual-pcm", action="store_true",
                        help="Average raw PCM instead of using the filter graph (needs 2+ inputs)")
    parser.add_argument("--env-file", help="Environment file with MIXPLANNER_* settings")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, help="Override MIXPLANNER_LOG_LEVEL")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = MixConfig.load_config(args.env_file)
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Invalid configuration: {e}")
        return EXIT_USAGE
    if args.log_level:
        config.log_level = args.log_level
    configure_logging(config)

    try:
        request = build_request(
            args.inputs,
            args.out,
            weights=_parse_weights(args.weights),
            duration=args.duration,
            normalize=not args.no_normalize,
            quality=args.quality,
        )
        planner = MixPlanner(config)
        result = planner.mix_manual(request) if args.manual_pcm else planner.mix(request)
    except ConfigurationError as e:
        logger.error(f"{e}")
        return EXIT_USAGE
    except MixError as e:
        logger.error(f"Fatal error in mixing process: {e}", exc_info=True)
        return EXIT_FAILURE

    logger.info(f"Done: {result.output} ({result.duration_sec:.2f}s of audio)")
    return EXIT_OK
