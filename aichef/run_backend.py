"""
Backend startup wrapper: serves aichef.main:app with uvicorn.
"""
import argparse
import logging
from typing import List, Optional

import uvicorn


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the AI Chef backend.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args(argv)

    logging.getLogger("aichef").info(f"[Backend] Starting AI Chef backend on http://{args.host}:{args.port}")
    uvicorn.run(
        "aichef.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
        access_log=True,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
