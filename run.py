#!/usr/bin/env python3
"""
Quick start script for Procurement Forecast Analytics
"""

import argparse
import logging
import os

import uvicorn

from procurement.config import CONFIG_ENV_VAR, load_config, setup_logging

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Run the procurement analytics API")
    parser.add_argument("--config", help="Path to a YAML config file (default: config/config.yaml)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    if args.config:
        os.environ[CONFIG_ENV_VAR] = args.config

    config = load_config(args.config)
    setup_logging(config)

    host, port = config["app"]["host"], config["app"]["port"]
    print("Procurement Forecast Analytics - Quick Start")
    print("=" * 50)
    print(f"[INFO] API will be available at: http://localhost:{port}")
    print(f"[INFO] API documentation at: http://localhost:{port}/docs")
    print("[INFO] Press Ctrl+C to stop the server")

    try:
        uvicorn.run("app.main:app", host=host, port=port, reload=args.reload, log_level="info")
    except KeyboardInterrupt:
        print("\n[INFO] Shutting down...")


if __name__ == "__main__":
    main()
