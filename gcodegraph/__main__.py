"""
gcodegraph — entry point.

Usage:
    python -m gcodegraph inspect part.gcode
    python -m gcodegraph export part.gcode --subdivide 2 -o out.gcode
    python -m gcodegraph serve --file part.gcode --port 3000
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from gcodegraph.graph import ParseError, EditError, read_gcode, subdivide, to_gcode

log = logging.getLogger("gcodegraph")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="gcodegraph", description="G-code → editable motion graph")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    i = sub.add_parser("inspect", help="Parse a file and print its summary as JSON")
    i.add_argument("file", help="Path to a .gcode file")

    e = sub.add_parser("export", help="Parse a file, optionally subdivide it, and write G-code")
    e.add_argument("file", help="Path to a .gcode file")
    e.add_argument("--subdivide", type=float, default=None, metavar="MM",
                   help="Split moves longer than MM millimetres")
    e.add_argument("-o", "--out", default=None, help="Output path (default: stdout)")

    sv = sub.add_parser("serve", help="Start the HTTP editor server")
    sv.add_argument("--file", default=None, help="G-code file to preload")
    sv.add_argument("--host", default=None, help="Host to bind")
    sv.add_argument("--port", type=int, default=None, help="Port to bind")

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.cmd == "inspect":
            graph = read_gcode(args.file)
            print(json.dumps(graph.summary(), indent=2))
            return 0

        if args.cmd == "export":
            graph = read_gcode(args.file)
            if args.subdivide is not None:
                result = subdivide(graph, args.subdivide)
                log.info(result.message)
            text = to_gcode(graph)
            if args.out:
                Path(args.out).write_text(text, encoding="utf-8")
                log.info("Wrote %s", args.out)
            else:
                sys.stdout.write(text)
            return 0

        if args.cmd == "serve":
            from gcodegraph.session import EditorSession
            from gcodegraph.web.server import main as serve_main, set_session
            if args.file:
                set_session(EditorSession.from_file(args.file))
            serve_main(host=args.host, port=args.port)
            return 0
    except (ParseError, EditError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    return 2


if __name__ == "__main__":
    sys.exit(main())
