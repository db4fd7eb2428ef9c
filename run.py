#!/usr/bin/env python3
"""
Microfinance Loan API Entry Point

Starts the FastAPI server with host and port taken from configuration
(MICROFINANCE_API_HOST / MICROFINANCE_API_PORT, default port 8090).
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from microfinance.api import run_server
from microfinance.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Microfinance Loan API...")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug=False)
    except KeyboardInterrupt:
        print("\nShutting down Microfinance Loan API...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
