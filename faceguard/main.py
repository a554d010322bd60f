"""
FaceGuard - Command Line Entry Point

Runs single verification-core operations on image and template files:
detect, quality, enroll, compare, match and health.
Results are printed as JSON; the exit code is 0 on success, 1 otherwise.
"""

import argparse
import json
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Config, fast_processing_config, high_accuracy_config, load_config
from .engine import FaceEngine
from .errors import FaceGuardError
from .logging_config import get_logger, setup_logging
from .models import FaceRegion

logger = get_logger(__name__)

PRESETS = {
    'default': lambda config: config,
    'high-accuracy': high_accuracy_config,
    'fast': fast_processing_config,
}


def _load_local_env() -> None:
    """Load environment variables from ./.env if present."""
    env_path = Path.cwd() / '.env'
    if not env_path.exists():
        return

    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        os.environ.setdefault(key.strip(), value.strip())


def _parse_region(value: str) -> FaceRegion:
    try:
        x, y, w, h = (int(part) for part in value.split(','))
    except ValueError:
        raise argparse.ArgumentTypeError('Region must be x,y,width,height')
    return FaceRegion(x=x, y=y, width=w, height=h)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog='faceguard',
        description='FaceGuard - Face Verification Core'
    )

    parser.add_argument(
        '--preset',
        choices=sorted(PRESETS),
        default='default',
        help='Configuration preset applied on top of the environment'
    )

    parser.add_argument(
        '--localizer',
        choices=['auto', 'cascade', 'fallback'],
        help='Localization strategy (or set LOCALIZER)'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    detect = commands.add_parser('detect', help='Localize faces in an image')
    detect.add_argument('image', type=Path)
    detect.add_argument('--multiple', action='store_true', help='Report every accepted face')

    quality = commands.add_parser('quality', help='Score a face region')
    quality.add_argument('image', type=Path)
    quality.add_argument('--region', type=_parse_region, required=True, help='x,y,width,height')

    enroll = commands.add_parser('enroll', help='Build a template (best of the given images)')
    enroll.add_argument('images', type=Path, nargs='+')
    enroll.add_argument('--output', type=Path, required=True, help='Template output file')
    enroll.add_argument('--region', type=_parse_region, help='x,y,width,height (single image)')

    compare = commands.add_parser('compare', help='Compare two template files')
    compare.add_argument('template_a', type=Path)
    compare.add_argument('template_b', type=Path)
    compare.add_argument('--threshold', type=float)

    match = commands.add_parser('match', help='Match an image against template files')
    match.add_argument('image', type=Path)
    match.add_argument('templates', type=Path, nargs='+')
    match.add_argument('--threshold', type=float)

    commands.add_parser('health', help='Run the engine self-test')

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    config = PRESETS[args.preset](load_config())
    if args.localizer:
        config = replace(config, localizer=args.localizer)
    if args.debug:
        config = replace(config, debug_mode=True)
    return config


def run_command(args: argparse.Namespace, engine: FaceEngine) -> Dict[str, Any]:
    """
    Execute one subcommand.

    Returns:
        JSON-serializable result dict containing a 'success' key
    """
    if args.command == 'detect':
        return engine.detect(args.image.read_bytes(), multiple=args.multiple).to_dict()

    if args.command == 'quality':
        report = engine.assess_quality(args.image.read_bytes(), args.region)
        return {'success': report.success, **report.factors,
                'overall': report.overall, 'issues': report.issues,
                'errorKind': report.error_kind.value if report.error_kind else None,
                'message': report.message}

    if args.command == 'enroll':
        images = [path.read_bytes() for path in args.images]
        if args.region is not None:
            result = engine.enroll(images[0], region=args.region)
        else:
            result = engine.enroll_best(images)

        if result.success:
            args.output.write_bytes(result.template.payload)
        return {
            'success': result.success,
            'qualityScore': result.quality_score,
            'errorKind': result.error_kind.value if result.error_kind else None,
            'message': result.message,
            'output': str(args.output) if result.success else None,
        }

    if args.command == 'compare':
        result = engine.compare(args.template_a.read_bytes(), args.template_b.read_bytes(),
                                args.threshold)
        return {
            'success': result.success and result.is_match,
            'similarity': result.similarity,
            'confidence': result.confidence,
            'isMatch': result.is_match,
            'errorKind': result.error_kind.value if result.error_kind else None,
            'components': result.metadata,
        }

    if args.command == 'match':
        candidates = {path.name: path.read_bytes() for path in args.templates}
        result = engine.match_against_many(args.image.read_bytes(), candidates, args.threshold)
        return {
            'success': result.success,
            'candidates': [
                {'rank': c.rank, 'template': c.template_id, 'similarity': c.similarity,
                 'confidence': c.confidence, 'isMatch': c.is_match}
                for c in result.candidates
            ],
            'skipped': result.skipped,
            'errorKind': result.error_kind.value if result.error_kind else None,
        }

    if args.command == 'health':
        status = engine.health_check()
        return {'success': status['healthy'], **status}

    raise ValueError(f'Unknown command: {args.command}')


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    _load_local_env()
    args = parse_args(argv)
    config = build_config(args)

    # Setup logging
    setup_logging(config.service_name, config.debug_mode)
    logger = get_logger(__name__)
    logger.debug(f'Command: {args.command} (preset={args.preset}, localizer={config.localizer})')

    try:
        engine = FaceEngine(config)
        output = run_command(args, engine)
    except (FaceGuardError, OSError) as e:
        logger.error(f'{args.command} failed: {e}')
        output = {'success': False, 'error': str(e)}

    print(json.dumps(output, indent=2, default=str))
    return 0 if output.get('success') else 1


if __name__ == '__main__':
    sys.exit(main())
