#!/usr/bin/env python3
"""
Lending Back Office Entry Point

Starts the FastAPI server with uvicorn using the LENDING_* configuration.
"""

import sys

import uvicorn

from lending.config import get_config
from lending.logging_config import setup_logging_from_config


if __name__ == "__main__":
    config = get_config()
    setup_logging_from_config(config)

    print("💸 Starting Lending Back Office...")
    print(f"🗄️  Database: {config.database_url}")
    print(f"🕒 Timezone: {config.timezone} ({config.locale})")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        uvicorn.run(
            "lending.api:app",
            host=config.api_host,
            port=config.api_port,
            workers=config.api_workers,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        print("\n👋 Shutting down Lending Back Office...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
