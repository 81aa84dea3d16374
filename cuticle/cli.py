"""
Command Line Interface for cuticle.
"""

import argparse
import logging
from typing import List, Optional

from .config import PipelineConfig
from .errors import PipelineError
from .generation_progress import GenerationProgress
from .generator import Generator
from .request import Interpolator, SharpenMask, ThumbnailRequest, parse_size
from .thumbnail_generator import ThumbnailGenerator

DEFAULT_CONTEXT = 'cuticle'


def setup_logging(verbose: bool) -> logging.Logger:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logging.getLogger('PIL').setLevel(logging.WARNING)

    return logging.getLogger('cuticle')


def context_name(tag: Optional[str]) -> str:
    """Log tag for a run: 'cuticle', or 'cuticle TAG' when one is given."""
    if tag:
        return f"{DEFAULT_CONTEXT} {tag}"
    return DEFAULT_CONTEXT


def get_config(args: argparse.Namespace) -> PipelineConfig:
    """Get pipeline configuration from environment and CLI overrides."""
    config = PipelineConfig.from_env()

    if getattr(args, 'workers', None) is not None:
        config.workers = args.workers
    if getattr(args, 'quality', None) is not None:
        config.quality = args.quality

    return config


def build_request(args: argparse.Namespace) -> ThumbnailRequest:
    """
    Turn parsed arguments into a ThumbnailRequest.

    Raises:
        InvalidRequest: If the size or interpolator cannot be parsed
    """
    width, height, constraint = parse_size(args.size)
    options = dict(
        width=width,
        height=height,
        constraint=constraint,
        crop=args.crop,
        rotate=args.rotate,
        linear=args.linear,
        context=context_name(args.context),
    )
    if args.command == 'thumbnail':
        options.update(
            sharpen=SharpenMask.parse(args.sharpen),
            interpolator=Interpolator.from_name(args.interpolator),
            import_profile=args.iprofile,
            export_profile=args.eprofile,
            delete_profile=args.delete,
            output_template=args.output,
        )

    request = ThumbnailRequest(**options)
    request.validate()
    return request


def cmd_thumbnail(args: argparse.Namespace) -> int:
    """Execute thumbnail command."""
    logger = setup_logging(args.verbose)

    try:
        config = get_config(args)
    except ValueError as e:
        logger.error(f"Invalid CUTICLE_* setting: {e}")
        return 1

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(error)
        return 1

    try:
        request = build_request(args)
    except PipelineError as e:
        logger.error(str(e))
        return 1

    logger.info(f"Thumbnail size: {request.width}x{request.height} ({request.constraint.value})")
    logger.info(f"Output: {request.output_template}")
    logger.info(f"Workers: {config.workers}")

    if args.show_files:
        logger.info("Show-files mode: will print each file")

    generator = Generator(
        thumbnail_generator=ThumbnailGenerator(config, logger=logger),
        request=request,
        keep_going=args.keep_going,
        dry_run=args.dry_run,
        logger=logger,
    )

    progress = None
    if not args.quiet:
        progress = GenerationProgress(show_files=args.show_files, logger=logger)

    try:
        stats = generator.generate_all(args.files, progress=progress)
    except KeyboardInterrupt:
        generator.stop()
        logger.info("Interrupted by user")
        return 130

    if progress:
        progress.on_complete(stats)

    return 0 if stats.succeeded else 1


def cmd_plan(args: argparse.Namespace) -> int:
    """Execute plan command."""
    logger = setup_logging(args.verbose)

    try:
        request = build_request(args)
    except PipelineError as e:
        logger.error(str(e))
        return 1

    thumb_gen = ThumbnailGenerator(logger=logger)
    status = 0
    for path in args.files:
        try:
            plan = thumb_gen.plan(path, request)
        except PipelineError as e:
            logger.error(str(e))
            status = 1
            continue

        shrink = plan.shrink
        print(f"{path}:")
        print(f"  Source:         {plan.source_width}x{plan.source_height} {plan.format}")
        print(f"  Rotation:       {plan.angle}")
        print(f"  Decode shrink:  {plan.decode_shrink}")
        print(f"  Integer shrink: {shrink.integer_shrink}")
        print(f"  Residual scale: {shrink.residual_scale:.6f}")
        print(f"  Upscale:        {'yes' if shrink.is_upscale else 'no'}")
        print(f"  Output:         {shrink.output_width}x{shrink.output_height}")

    return status


def add_request_arguments(parser: argparse.ArgumentParser) -> None:
    """Add the arguments shared by thumbnail and plan."""
    parser.add_argument('files', nargs='+', metavar='FILE', help='Source images')
    parser.add_argument('-s', '--size', default='128',
                        help="Shrink to SIZE or to WIDTHxHEIGHT; a trailing '^' fills the box")
    parser.add_argument('-c', '--crop', action='store_true', help='Crop exactly to SIZE')
    parser.add_argument('-t', '--rotate', action='store_true', help='Auto-rotate')
    parser.add_argument('-a', '--linear', action='store_true', help='Process in linear space')
    parser.add_argument('-x', '--context', metavar='CONTEXT', help='Tag log items with CONTEXT')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog='cuticle',
        description='Thumbnail generator with bounded memory use',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cuticle thumbnail -s 800 photo.jpg            writes tn_photo.jpg
  cuticle thumbnail -s 200x200^ -c -t *.jpg     square crops, auto-rotated
  cuticle plan -s 800 photo.jpg                 shows the shrink plan only

Environment:
  CUTICLE_WORKERS, CUTICLE_TILE_SIZE, CUTICLE_STRIP_HEIGHT, CUTICLE_QUALITY
"""
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Thumbnail command
    thumb_parser = subparsers.add_parser('thumbnail', help='Generate thumbnails')
    add_request_arguments(thumb_parser)
    thumb_parser.add_argument('-o', '--output', default='tn_%s.jpg', metavar='FORMAT',
                              help="Set output to FORMAT; '%%s' is the source basename")
    thumb_parser.add_argument('-p', '--interpolator', default='bilinear',
                              help='Resample with INTERPOLATOR')
    thumb_parser.add_argument('-r', '--sharpen', default='mild', metavar='none|mild|MASKFILE',
                              help='Sharpen with none, mild or a mask file')
    thumb_parser.add_argument('-e', '--eprofile', metavar='PROFILE', help='Export with PROFILE')
    thumb_parser.add_argument('-i', '--iprofile', metavar='PROFILE',
                              help='Import untagged images with PROFILE')
    thumb_parser.add_argument('-d', '--delete', action='store_true',
                              help='Delete profile from exported image')
    thumb_parser.add_argument('--workers', type=int, metavar='N', help='Override CUTICLE_WORKERS')
    thumb_parser.add_argument('--quality', type=int, metavar='Q', help='Override CUTICLE_QUALITY')
    thumb_parser.add_argument('--keep-going', action='store_true',
                              help='Continue with the next file after a failure')
    thumb_parser.add_argument('-n', '--dry-run', action='store_true', help='Show what would be done')
    thumb_parser.add_argument('-q', '--quiet', action='store_true', help='Suppress progress output')
    thumb_parser.add_argument('--show-files', action='store_true',
                              help='Print each file as processed with result')

    # Plan command
    plan_parser = subparsers.add_parser('plan', help='Print the shrink plan for each file')
    add_request_arguments(plan_parser)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == 'thumbnail':
        return cmd_thumbnail(parsed_args)
    elif parsed_args.command == 'plan':
        return cmd_plan(parsed_args)

    return 1
