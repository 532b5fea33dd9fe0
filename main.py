"""Scene Stage — dev launcher. Starts the API server in watch mode."""

import argparse
import os
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "13013"))


def main():
    parser = argparse.ArgumentParser(description="Scene Stage dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Clean and create a demo conversation")
    parser.add_argument("--no-reload", action="store_true",
                        help="Disable auto-reload")
    args = parser.parse_args()

    # Handle --demo: init storage and populate, then continue to the server
    if args.demo or args.data_dir:
        from scene_stage import storage
        data_dir = args.data_dir or Path("data")
        storage.init_storage(data_dir)
        if args.demo:
            from scene_stage.demo import create_demo_data
            create_demo_data()

    # The server process resolves its data dir from the environment
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())

    print(f"Starting server on http://localhost:{PORT} ...")
    uvicorn.run(
        "scene_stage.api.server:app",
        host=HOST,
        port=PORT,
        reload=not args.no_reload,
        app_dir=str(ROOT),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
