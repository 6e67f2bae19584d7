"""
Start the energy modeller service.

    python run.py                       # 127.0.0.1:8000, gathering as configured
    python run.py --port 8001 --read-only
    python run.py --host 0.0.0.0 --reload

The data gatherer and the in-memory store live inside the server process,
so uvicorn is always started with a single worker.
"""
import os
import sys
import argparse

from dotenv import load_dotenv
import uvicorn

# .env must be loaded before energy_modeller builds its settings
load_dotenv()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Energy accounting and prediction service for compute clusters",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Reload on source changes")
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Serve queries without gathering telemetry into the store",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    if args.read_only:
        # inherited by the reloader's child process as well
        os.environ["PERFORM_DATA_GATHERING"] = "false"

    from energy_modeller.config import get_settings
    try:
        settings = get_settings()
    except ValueError as e:
        print(f"Invalid settings: {e}", file=sys.stderr)
        return 1

    base = f"http://{args.host}:{args.port}"
    print(f"Energy modeller on {base}")
    print(f"  telemetry: {settings.TELEMETRY_SOURCE}")
    print(f"  predictor: {settings.ENERGY_PREDICTOR}")
    print(f"  gathering: {'on' if settings.PERFORM_DATA_GATHERING else 'off'}")
    print(f"  docs:      {base}/docs")

    uvicorn.run(
        "energy_modeller.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1,
        log_level=settings.LOG_LEVEL.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
