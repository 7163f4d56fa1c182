"""Quest Bot — server launcher. Validates the story, then serves the API."""

import argparse
import os
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")


def main():
    parser = argparse.ArgumentParser(description="Quest Bot server")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="User data directory (default: ./data)")
    parser.add_argument("--story", type=Path, default=None,
                        help="Story file (default: presets/story.json)")
    parser.add_argument("--host", default=None, help="Bind address")
    parser.add_argument("--port", type=int, default=None, help="Bind port")
    parser.add_argument("--check", action="store_true",
                        help="Validate the story file and exit")
    args = parser.parse_args()

    # Flags override env so the app factory (which reads env) sees them too
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())
    if args.story:
        os.environ["STORY_PATH"] = str(args.story.resolve())

    from questbot.catalog import StoryCatalog
    from questbot.config import configure_logging, load_config
    from questbot.errors import CatalogError

    config = load_config()
    configure_logging(config.log_level)

    try:
        catalog = StoryCatalog.load(config.story_file)
    except CatalogError as e:
        print(e, file=sys.stderr)
        sys.exit(1)

    if args.check:
        for chapter in catalog.chapters():
            print(f"Chapter {chapter.id}: {chapter.title} ({catalog.scene_count(chapter.id)} scenes)")
        print("Story OK")
        return

    uvicorn.run(
        "questbot.app:create_app",
        factory=True,
        host=args.host or config.host,
        port=args.port or config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
