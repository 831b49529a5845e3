#!/usr/bin/env python3
"""
Startup script for the concept graph snapshot server.

Usage:
    concept-graph-server [--port PORT] [--host HOST] [--snapshot-dir DIR]

Environment variables:
    CG_HTTP_PORT: Server port (default: 8766)
    CG_HTTP_HOST: Server host (default: 127.0.0.1)
    CG_LOG_LEVEL: Logging level (default: INFO)
    CG_SNAPSHOT_DIR: Snapshot directory (default: ~/.concept-graph/snapshots)
"""

import argparse
import logging
import os
import sys

logger = logging.getLogger(__name__)


def main():
    """Start the HTTP server."""
    parser = argparse.ArgumentParser(description="Concept Graph Snapshot Server")
    parser.add_argument("--port", type=int, default=None, help="Server port (default: 8766)")
    parser.add_argument("--host", default=None, help="Server host (default: 127.0.0.1)")
    parser.add_argument("--snapshot-dir", default=None, help="Directory for snapshot files")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")

    args = parser.parse_args()

    # Set environment variables from args if provided
    if args.port:
        os.environ["CG_HTTP_PORT"] = str(args.port)
    if args.host:
        os.environ["CG_HTTP_HOST"] = args.host
    if args.snapshot_dir:
        os.environ["CG_SNAPSHOT_DIR"] = args.snapshot_dir
    if args.log_level:
        os.environ["CG_LOG_LEVEL"] = args.log_level.upper()

    from ..config import SnapshotServerConfig

    config = SnapshotServerConfig.from_env()

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr
    )

    print(f"Starting Concept Graph Snapshot Server on {config.host}:{config.port}")
    print(f"Log level: {config.log_level}")
    print("Press Ctrl+C to stop")
    print("")

    try:
        import uvicorn
        from .app import create_app

        uvicorn.run(
            create_app(config),
            host=config.host,
            port=config.port,
            log_level=config.log_level.lower(),
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    except Exception as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
