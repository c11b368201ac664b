"""
gstream - Marlin G-code streamer, command-line entry point

Run with: gstream /dev/ttyUSB0 250000 print.gcode --feedrate=150 --hotend=210
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from pydantic import ValidationError

from gstream.config import StreamConfig
from gstream.core.logger import log_critical, log_info
from gstream.core.serial_transport import SUPPORTED_BAUD_RATES, SerialTransport
from gstream.streamer import GCodeStreamer


EXAMPLES = """\
example:
  gstream /dev/ttyUSB0 250000 print.gcode --feedrate=150 --hotend=210 --debug
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gstream",
        description="Stream G-code to a Marlin printer with line numbers, checksums and resend handling.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("port", help="serial device, e.g. /dev/ttyUSB0")
    parser.add_argument(
        "baud", type=int,
        help=f"baud rate ({', '.join(str(b) for b in SUPPORTED_BAUD_RATES)})",
    )
    parser.add_argument("file", help="G-code file to stream")

    overrides = parser.add_argument_group("overrides")
    overrides.add_argument("--feedrate", type=int, metavar="PCT", help="multiply all F values by PCT%%")
    overrides.add_argument("--bed", type=int, metavar="C", help="force bed temperature (M140/M190)")
    overrides.add_argument("--hotend", type=int, metavar="C", help="force hotend temperature (M104/M109)")
    overrides.add_argument("--debug", action="store_true", help="show all serial traffic")

    tuning = parser.add_argument_group("protocol")
    tuning.add_argument("--timeout", type=float, default=10.0, metavar="S",
                        help="seconds to wait for each response (default: 10)")
    tuning.add_argument("--settle", type=float, default=4.0, metavar="S",
                        help="seconds to wait after an emergency reset (default: 4)")
    tuning.add_argument("--max-resets", type=int, metavar="N",
                        help="give up after N emergency resets (default: unlimited)")
    return parser


def parse_config(argv: Optional[List[str]] = None) -> StreamConfig:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = StreamConfig(
            port=args.port,
            baud=args.baud,
            file=args.file,
            feedrate=args.feedrate,
            bed=args.bed,
            hotend=args.hotend,
            debug=args.debug,
            read_timeout=args.timeout,
            settle_time=args.settle,
            max_resets=args.max_resets,
        )
        config.to_serial_config()
    except (ValidationError, ValueError) as e:
        parser.error(str(e))
    return config


def run(config: StreamConfig) -> int:
    """Open the port, stream the file, return the process exit code."""
    if not config.file.is_file():
        log_critical(f"Cannot open {config.file}")
        return 1

    overrides = config.to_overrides()
    transport = SerialTransport(config.port, config.to_serial_config())
    try:
        transport.connect()
        for line in overrides.describe():
            log_info(line)
        streamer = GCodeStreamer(transport, overrides, config.to_session_settings())
        result = streamer.stream_file(config.file)
    except ConnectionError as e:
        log_critical(str(e))
        return 1
    except KeyboardInterrupt:
        log_critical("Interrupted")
        return 130
    finally:
        transport.disconnect()

    log_info(str(result))
    return 0 if result.success else 1


def main(argv: Optional[List[str]] = None) -> int:
    return run(parse_config(argv))


if __name__ == "__main__":
    sys.exit(main())
