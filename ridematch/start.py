#!/usr/bin/env python3
"""
Startup script for the RIDEMATCH backend
"""

import os
import uvicorn


def uvicorn_settings(environ=os.environ) -> dict:
    """Build uvicorn keyword arguments from PORT, HOST and RENDER"""
    production = environ.get("RENDER") is not None

    return {
        "app": "ridematch.server:app",
        "host": environ.get("HOST", "0.0.0.0"),
        "port": int(environ.get("PORT", 8000)),
        # Route cache and rate limiter live in process memory
        "workers": int(environ.get("WEB_CONCURRENCY", 1)),
        "access_log": True,
        "log_level": "info" if production else "debug",
    }


def main():
    config = uvicorn_settings()

    print(f"🚗 Starting RIDEMATCH backend on {config['host']}:{config['port']}")
    print(f"🔧 Workers: {config['workers']}, log level: {config['log_level']}")

    uvicorn.run(**config)


if __name__ == "__main__":
    main()
