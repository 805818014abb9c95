#!/usr/bin/env python3

"""CLI tool to serve the serial logger and list serial ports"""

import argparse
import logging
import ok_logging_setup
import ok_serial_log
import uvicorn

ok_logging_setup.skip_traceback_for(ok_serial_log.PortScanException)
ok_logging_setup.skip_traceback_for(ok_serial_log.InvalidNameError)


def main():
    opts = ok_serial_log.ServerOptions.from_env()

    parser = argparse.ArgumentParser(description="Log serial ports to files.")
    subparsers = parser.add_subparsers(title="actions", dest="command")
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument(
        "--host", default=opts.host, help=f"address to bind ({opts.host})"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=opts.port, help=f"TCP port ({opts.port})"
    )
    serve_parser.add_argument(
        "--log-dir", "-d", default=opts.log_dir, help="directory for log files"
    )
    serve_parser.add_argument(
        "--default-log", default=opts.default_log_name, help="default log name"
    )

    ports_parser = subparsers.add_parser("ports", help="List known serial ports")
    ports_parser.add_argument("match", nargs="*", help="words to search for")
    ports_parser.add_argument(
        "--verbose", "-v", action="store_true", help="print detailed properties"
    )

    args = parser.parse_args()
    if not args.command:
        args = parser.parse_args(["serve"])

    level = "warning" if args.command == "ports" and not args.verbose else "info"
    ok_logging_setup.install({"OK_LOGGING_LEVEL": level})

    if args.command == "ports":
        list_ports(args.match, verbose=args.verbose)
    elif args.command == "serve":
        opts = ok_serial_log.ServerOptions(
            log_dir=args.log_dir,
            host=args.host,
            port=args.port,
            default_log_name=args.default_log,
        )
        serve(opts)


def serve(opts: ok_serial_log.ServerOptions):
    with ok_serial_log.SessionManager.from_options(opts) as manager:
        app = ok_serial_log.create_app(manager)
        logging.info("🔌 Serving on http://%s:%d", opts.host, opts.port)
        uvicorn.run(app, host=opts.host, port=opts.port, log_config=None)


def list_ports(words: list[str], verbose: bool = False):
    found = [p for p in ok_serial_log.scan_serial_ports() if p.matches(words)]
    if not found:
        if words:
            ok_logging_setup.exit(f"🚫 No serial ports match {' '.join(words)!r}")
        else:
            ok_logging_setup.exit("❌ No serial ports found")

    logging.info("🔎 %d serial port%s found", len(found), "" if len(found) == 1 else "s")
    for port in found:
        if verbose:
            print(format_detail(port), end="\n\n")
        else:
            print(format_line(port))


def format_line(port: ok_serial_log.SerialPort) -> str:
    words = [port.name]
    for k in ("manufacturer", "description", "serial_number"):
        if (v := port.attr.get(k)) and v != port.name:
            words.append(repr(v) if " " in v else v)
    return " ".join(words)


def format_detail(port: ok_serial_log.SerialPort) -> str:
    return f"Port: {port.name}" + "".join(
        f"\n  {k}={v!r}" for k, v in port.attr.items()
    )


if __name__ == "__main__":
    main()
