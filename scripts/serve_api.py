from __future__ import annotations

import argparse

import uvicorn

from newsdesk.apps.api.main import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the newsletter publish API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()
    # The API only records issues; run scripts/delivery_worker.py alongside it to send them.
    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
