"""Entry point for running the coordinator as a module."""

import argparse
import os
import sys

import uvicorn


def main() -> None:
    """Main entry point for the purchase coordinator."""
    parser = argparse.ArgumentParser(
        description="IAP Purchase Coordinator - store UI backend over a local transaction queue"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "127.0.0.1"),
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8080")),
        help="Port to bind to (default: 8080)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=os.getenv("LOG_FORMAT", "json"),
        help="Log output format (default: json)",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "config/store.yaml"),
        help="Path to store.yaml configuration file (default: config/store.yaml)",
    )
    parser.add_argument(
        "--game-data",
        default=os.getenv("GAME_DATA_PATH"),
        help="Path to the persisted game data file (default: game_data_path from the config)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() == "true",
        help="Enable auto-reload for development (default: false)",
    )

    args = parser.parse_args()

    # Set environment variables for the server process
    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["LOG_FORMAT"] = args.log_format
    os.environ["CONFIG_PATH"] = args.config
    if args.game_data:
        os.environ["GAME_DATA_PATH"] = args.game_data

    # Print startup banner
    if args.log_format == "console":
        print("=" * 60)
        print("IAP Purchase Coordinator v0.1.0")
        print("=" * 60)
        print(f"Host: {args.host}")
        print(f"Port: {args.port}")
        print(f"Log Level: {args.log_level}")
        print(f"Config: {args.config}")
        print(f"Game data: {args.game_data or 'from config'}")
        print("=" * 60)

    # Run uvicorn server
    try:
        uvicorn.run(
            "iap_coordinator.main:create_app",
            factory=True,
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            reload=args.reload,
            access_log=False,  # RequestLoggingMiddleware logs requests
        )
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")
        sys.exit(0)
    except Exception as e:
        print(f"Failed to start coordinator: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
