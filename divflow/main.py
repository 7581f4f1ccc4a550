#!/usr/bin/env python3
"""
divflow command-line entry point.

Usage:
    divflow                                   # rotational 2D field
    divflow --preset "Radial Outward"
    divflow --fx "sin(y)" --fy "cos(x)" --palette plasma
    divflow --physics-preset "Electric Dipole"
    divflow --dimension 3 --preset "Helical"
    divflow --summary --fx "x" --fy "y"       # headless: log divergence range
    divflow --save flow.gif --frames 120
"""

import argparse
import logging
import sys

from . import config
from .core import presets
from .core.expression import list_constants, list_functions
from .engine import FieldEngine
from .logging_config import setup_logging
from .visualization.color_system import Palette

logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    functions = ", ".join(sorted(list_functions()))
    constants = ", ".join(sorted(list_constants()))
    parser = argparse.ArgumentParser(
        description='divflow - visualize vector fields, their divergence and tracer flow',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Expressions use x, y (and z in 3D), numbers, + - * / % ^ ** and parentheses.
Functions: {functions}
Constants: {constants}
        """
    )

    parser.add_argument('--dimension', '-d', type=int, choices=(2, 3), default=2,
                        help='2D or 3D view (default: 2)')
    parser.add_argument('--fx', type=str, default=None, help='x component expression')
    parser.add_argument('--fy', type=str, default=None, help='y component expression')
    parser.add_argument('--fz', type=str, default=None, help='z component expression (3D only)')

    preset_group = parser.add_mutually_exclusive_group()
    preset_group.add_argument('--preset', '-p', type=str, default=None,
                              help='Field preset by name')
    preset_group.add_argument('--physics-preset', type=str, default=None,
                              help='Point-source preset by name (2D only)')

    parser.add_argument('--palette', type=str, default=config.DEFAULT_PALETTE,
                        choices=[p.value for p in Palette], help='Heat-map palette')
    parser.add_argument('--particles', '-n', type=int, default=None, help='Number of tracer particles')
    parser.add_argument('--speed', type=float, default=config.DEFAULT_SPEED,
                        help=f'Animation speed multiplier ({config.MIN_SPEED}-{config.MAX_SPEED})')
    parser.add_argument('--no-pulse', action='store_true', help='Disable heat-map pulsing')
    parser.add_argument('--frames', type=int, default=None, help='Number of frames to animate')
    parser.add_argument('--save', type=str, default=None, help='Save the animation to this file instead of showing it')
    parser.add_argument('--summary', action='store_true', help='Log field statistics and exit without drawing')
    parser.add_argument('--list-presets', '-l', action='store_true', help='List presets and exit')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    return parser.parse_args(argv)


def list_presets():
    print("\n2D field presets:")
    for preset in presets.FIELD_PRESETS_2D:
        print(f"  {preset.name:<22} Fx={preset.fx:<14} Fy={preset.fy:<14} {preset.description}")
    print("\n3D field presets:")
    for preset in presets.FIELD_PRESETS_3D:
        print(f"  {preset.name:<22} Fx={preset.fx:<14} Fy={preset.fy:<14} Fz={preset.fz:<20} {preset.description}")
    print("\nPhysics presets (2D):")
    for preset in presets.PHYSICS_PRESETS:
        print(f"  {preset.name:<22} {len(preset.sources)} sources  {preset.description}")


def build_engine(args):
    """Create and configure a FieldEngine from parsed arguments."""
    engine = FieldEngine(dimension=args.dimension, particle_count=args.particles)
    engine.set_palette(args.palette)
    engine.set_speed(args.speed)
    engine.set_pulsing(not args.no_pulse)

    if args.preset:
        engine.apply_preset(args.preset)
    elif args.physics_preset:
        engine.apply_physics_preset(args.physics_preset)

    if args.fx is not None or args.fy is not None or args.fz is not None:
        current = engine.expressions
        engine.set_expressions(
            args.fx if args.fx is not None else current['x'],
            args.fy if args.fy is not None else current['y'],
            args.fz if args.fz is not None else current.get('z'),
        )
    return engine


def main(argv=None):
    """Main function orchestrating the divflow view."""
    args = parse_arguments(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    if args.list_presets:
        list_presets()
        return 0

    try:
        engine = build_engine(args)
    except (KeyError, ValueError) as exc:
        logger.error("%s", exc.args[0] if exc.args else exc)
        return 1

    for axis, message in engine.errors.items():
        logger.warning("F%s falls back to 0: %s", axis, message)

    if args.summary:
        if args.frames:
            for _ in range(args.frames):
                engine.step()
        for key, value in engine.summary().items():
            logger.info("%s: %s", key, value)
        return 0

    # Imported here so headless use does not need a display backend
    from .visualization.viewer import FieldViewer

    viewer = FieldViewer(engine)
    if args.save:
        viewer.save(args.save, frames=args.frames)
    else:
        viewer.run(frames=args.frames)
    return 0


if __name__ == "__main__":
    sys.exit(main())
