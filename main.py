import asyncio
import logging

from watchdog.observers import Observer

from inspiration_cards.collection import CardCollection
from inspiration_cards.file_handler import FileHandler
from inspiration_cards.geometry import Viewport
from inspiration_cards.lib.args import get_one, setup_args
from inspiration_cards.storage import FolderStorage

TEMPLATE_STARTUP_ARGS = (
    ("--config_path", str, None, "Path to the config file (default: config.txt)."),
    ("--debug", bool, False, "Enable DEBUG logging."),
    ("--logging_format", str, None, "Python logging format string."),
    ("--cards_dir", str, None, "One or more card folders to open and watch."),
    ("--debounce_ms", int, [300], "Autosave debounce delay in milliseconds."),
    (
        "--normalize",
        bool,
        False,
        "Rewrite loaded or hand-edited cards into canonical form.",
    ),
    (
        "--viewport",
        int,
        [1920, 1080],
        "Viewport WIDTH HEIGHT used to place floating cards.",
    ),
)
DEFAULT_CONFIG_PATH = "config.txt"
DEFAULT_LOGGING_FORMAT = (
    "%(asctime)s [%(levelname)s] %(filename)s:%(lineno)d: %(message)s"
)

logger = logging.getLogger(__name__)


async def run(system_args: dict) -> None:
    loop = asyncio.get_running_loop()

    debounce_seconds = int(get_one(system_args, "debounce_ms", 300)) / 1000.0
    viewport_values = system_args.get("viewport") or [1920, 1080]
    if len(viewport_values) != 2:
        raise ValueError("--viewport expects WIDTH HEIGHT")
    viewport = Viewport(*viewport_values)

    observer = Observer()
    collections = []

    for path in system_args["cards_dir"]:
        storage = FolderStorage(path)
        collection = CardCollection(
            storage,
            debounce_seconds=debounce_seconds,
            viewport=viewport,
            normalize=bool(system_args.get("normalize")),
        )
        handler = FileHandler(collection=collection, loop=loop)
        storage.on_write = handler.mark_to_ignore

        await collection.open()
        collections.append(collection)
        observer.schedule(handler, path=storage.root, recursive=True)

    observer.start()

    try:
        await asyncio.Event().wait()
    finally:
        observer.stop()
        await asyncio.to_thread(observer.join)
        for collection in collections:
            await collection.close()


def main() -> None:
    system_args, unknown_args = setup_args(
        template=TEMPLATE_STARTUP_ARGS,
        default_config_path=DEFAULT_CONFIG_PATH,
    )

    # --- logging ---

    log_level = logging.DEBUG if system_args.get("debug") else logging.INFO
    log_format = get_one(system_args, "logging_format") or DEFAULT_LOGGING_FORMAT
    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    if unknown_args:
        logger.warning("Unknown arguments ignored: %s", unknown_args)

    # --- running ---

    if not system_args.get("cards_dir"):
        raise ValueError("No --cards_dir was set up")

    try:
        asyncio.run(run(system_args))
    except KeyboardInterrupt:
        logger.info("Stopped.")


if __name__ == "__main__":
    main()
