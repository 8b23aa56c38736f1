"""Main application entry point for moviegen."""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from api.dependencies import (
    close_services,
    get_assembler,
    get_config,
    get_processor,
    get_uploader,
)
from models.scene import Scene
from scene_pipeline.errors import AssemblyError, UploadError
from services.livepeer_uploader import UploadTask
from utils.config import setup_logging, validate_config

logger = logging.getLogger(__name__)


def load_scenes(path: Path) -> list[Scene]:
    """Read a scene list from JSON: either an array or ``{"scenes": [...]}``.

    Raises:
        ValueError: If the file is not a valid scene list
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("scenes", [])
    if not isinstance(data, list) or not data:
        raise ValueError(f"{path} contains no scenes")
    return [Scene.from_dict(item) for item in data]


class UploadProgressBar:
    """tqdm progress bar fed by an upload task's progress stream."""

    def __init__(self, desc: str = "Uploading"):
        self.desc = desc
        self.bar: Optional[tqdm] = None

    async def follow(self, task: UploadTask) -> None:
        async for update in task.progress():
            if self.bar is None:
                self.bar = tqdm(
                    total=update.total_bytes,
                    desc=self.desc,
                    unit="B",
                    unit_scale=True,
                    position=0,
                    leave=True,
                )
            self.bar.n = update.bytes_sent
            self.bar.refresh()

    def close(self):
        if self.bar is not None:
            self.bar.close()
            self.bar = None


class MovieGenApp:
    """Main application class for moviegen."""

    def __init__(self, config: dict):
        self.config = config

    async def assemble(self, scenes_file: str) -> int:
        """Assemble a scene list file, upload it and print the playback URL."""
        scenes = load_scenes(Path(scenes_file))
        logger.info(f"Loaded {len(scenes)} scenes from {scenes_file}")

        try:
            output_path = await get_assembler().render(scenes)
            logger.info(f"Movie assembled: {output_path}")

            task = get_uploader().start_upload(output_path)
            progress_bar = UploadProgressBar(desc=output_path.name)
            try:
                await progress_bar.follow(task)
                playback = await task.result()
            finally:
                progress_bar.close()
        finally:
            await close_services()

        print(playback.url)
        return 0

    async def create(self, prompt: str, request_id: Optional[str] = None) -> int:
        """Run the full prompt-to-playback flow for one request."""
        request_id = request_id or str(uuid.uuid4())
        try:
            processor = await get_processor()
            playback = await processor.handle(request_id, prompt)
        finally:
            await close_services()

        if playback is None:
            logger.warning(f"Request {request_id} was already processed")
            return 0

        print(playback.url)
        return 0


def serve(host: str, port: int, log_level: str) -> None:
    """Run the HTTP API."""
    import uvicorn

    from utils.logging import setup_logging as setup_structured_logging

    setup_structured_logging(log_level)
    uvicorn.run("api.server:app", host=host, port=port, log_config=None)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="moviegen scene-to-video assembler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  moviegen assemble scenes.json            # Assemble and upload a scene list
  moviegen create "a robot learns to fish" # Prompt -> story -> movie
  moviegen serve --port 8000               # Run the HTTP API
        """,
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    assemble_parser = subparsers.add_parser("assemble", help="Assemble a scene list JSON file")
    assemble_parser.add_argument("scenes_file", help="Path to scenes JSON")

    create_parser = subparsers.add_parser("create", help="Create a movie from a prompt")
    create_parser.add_argument("prompt", help="Story prompt")
    create_parser.add_argument("--request-id", default=None, help="Idempotency key")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()

    config = get_config()
    log_level = args.log_level or config.get("log_level", "INFO")

    if args.command == "serve":
        serve(args.host, args.port, log_level)
        return

    setup_logging(log_level)

    errors = validate_config(config, require_story=False)
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        sys.exit(1)

    app = MovieGenApp(config)

    try:
        if args.command == "assemble":
            exit_code = asyncio.run(app.assemble(args.scenes_file))
        else:
            exit_code = asyncio.run(app.create(args.prompt, args.request_id))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except (AssemblyError, UploadError) as e:
        logger.error(f"Movie creation failed: {e}")
        sys.exit(1)
    except (ValueError, OSError) as e:
        logger.error(f"Invalid input: {e}")
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
