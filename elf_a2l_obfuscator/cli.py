"""
Command line interface: obfuscate an ELF file and its A2L file together.
"""
import sys
import argparse
import logging

from .config import ObfuscatorConfig
from .errors import ObfuscationError
from .pipeline import run
from .utils import parse_level, setup_logging

USAGE = "a2l-elf-obfuscate [--config CONFIG] [--save-config PATH] <input.elf> <output.elf> <input.a2l> <output.a2l>"


def build_parser():
    parser = argparse.ArgumentParser(
        prog="a2l-elf-obfuscate",
        usage=USAGE,
        description="Obfuscate the debug info of an ELF file and the matching A2L file")

    parser.add_argument("files", nargs="*", help="Input ELF, output ELF, input A2L, output A2L")
    parser.add_argument("--config", type=str, default=None, help="Path to JSON configuration file")
    parser.add_argument("--save-config", type=str, default=None,
                        help="Write the effective configuration to this JSON file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug output")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if len(args.files) != 4:
        parser.print_usage(sys.stderr)
        return 1
    elf_in, elf_out, a2l_in, a2l_out = args.files

    try:
        config = ObfuscatorConfig(args.config)
        level = logging.DEBUG if args.verbose else parse_level(config.get("logging", "level", default="INFO"))
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger = setup_logging(config.get("logging", "file"), level)
    logger.debug(f"Configuration: {config}")

    try:
        if args.save_config:
            config.save(args.save_config)
        run(elf_in, elf_out, a2l_in, a2l_out, config)
    except (ObfuscationError, OSError) as e:
        logger.debug("Run failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
