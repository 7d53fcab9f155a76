#!/usr/bin/env python3
"""
Run script for the keyservice API.
This script launches the FastAPI server with the RPC endpoint mounted.
"""
import sys
import traceback

import uvicorn
from dotenv import load_dotenv

from keyservice.config import Settings

if __name__ == "__main__":
    load_dotenv()
    try:
        settings = Settings.from_env()
        print("Starting keyservice server...")
        print(f"RPC endpoint at http://{settings.api_host}:{settings.api_port}{settings.rpc_path}")

        uvicorn.run(
            "keyservice.main:create_app",
            factory=True,
            host=settings.api_host,
            port=settings.api_port,
            log_level=settings.log_level.lower(),
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)
