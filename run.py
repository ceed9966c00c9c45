#!/usr/bin/env python3
"""
Futura Homes Back Office Entry Point

Starts the FastAPI server with the back office system.
"""

import sys

from futura_homes.config import get_config
from futura_homes.api import run_server


if __name__ == "__main__":
    config = get_config()
    print("🏠 Starting Futura Homes Back Office...")
    print("📄 Contracts to sell and installment schedules enabled")
    print("🔒 Audit trail active")
    print("💰 All amounts use Decimal precision")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False  # Set to True for development
        )
    except KeyboardInterrupt:
        print("\n👋 Shutting down Futura Homes Back Office...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
