"""Command line entry point.

    ensemble-sync serve [--host H] [--port P]
    ensemble-sync display SCREEN_ID
    ensemble-sync control show|next|prev|goto N|add|delete N|set N URL...|move OLD NEW
    ensemble-sync control snapshots|save ID|load ID|drop ID
"""
import argparse
import asyncio
import logging
import sys

from ensemble_sync.client.control import PresentationController
from ensemble_sync.client.display import DisplayPoller, DisplayView, ViewKind
from ensemble_sync.client.image_probe import ImageProbe
from ensemble_sync.client.sync_client import StateSyncClient
from ensemble_sync.config import settings
from ensemble_sync.main import configure_logging
from ensemble_sync.schemas.image import display_name

logger = logging.getLogger("ensemble_sync.cli")


def _describe(view: DisplayView) -> str:
    if view.kind is ViewKind.IMAGE:
        state = "loaded" if view.opacity else "loading"
        return f"[image:{state}] {view.image_url} (fade {view.crossfade_seconds}s)"
    return f"[{view.kind.value}] {view.message}"


async def run_display(screen_id: str, base_url: str) -> int:
    async with StateSyncClient(base_url, timeout=settings.request_timeout_secs) as client:
        poller = DisplayPoller(
            screen_id,
            reader=client,
            prober=ImageProbe(client.fetch_bytes),
            on_render=lambda view: print(_describe(view), flush=True),
        )
        if not poller.is_valid:
            poller.start()
            return 2
        async with poller:
            stop = asyncio.Event()
            await stop.wait()
    return 0


def _print_deck(controller: PresentationController) -> None:
    if not controller.slides:
        print("(no slides)")
    for i, slide in enumerate(controller.slides):
        marker = ">" if i == controller.current_slide_index else " "
        names = ", ".join(display_name(img) or "-" for img in slide.images)
        print(f"{marker} {i:3d}: {names}")
    if controller.error:
        print(f"error: {controller.error}", file=sys.stderr)


async def run_control(args: argparse.Namespace) -> int:
    async with StateSyncClient(args.base_url, timeout=settings.request_timeout_secs) as client:
        controller = PresentationController(client)
        if not await controller.initialize():
            print(f"error: {controller.error}", file=sys.stderr)
            return 1

        action = args.action
        params = args.params
        if action == "snapshots":
            for summary in await controller.list_snapshots():
                print(f"{summary.id}\t{summary.updated_at}")
            return 1 if controller.error else 0

        actions = {
            "show": lambda: None,
            "next": controller.next_slide,
            "prev": controller.prev_slide,
            "add": controller.add_slide,
            "goto": lambda: controller.go_to_slide(int(params[0])),
            "delete": lambda: controller.delete_slide(int(params[0])),
            "set": lambda: controller.update_slide_images(int(params[0]), params[1:]),
            "move": lambda: controller.reorder_slides(int(params[0]), int(params[1])),
            "save": lambda: controller.save_snapshot(params[0]),
            "load": lambda: controller.load_snapshot(params[0]),
            "drop": lambda: controller.delete_snapshot(params[0]),
        }
        if action not in actions:
            print(f"Unknown action: {action}", file=sys.stderr)
            return 2
        try:
            pending = actions[action]()
        except (IndexError, ValueError):
            print(f"Bad arguments for '{action}': {' '.join(params)}", file=sys.stderr)
            return 2
        if pending is not None:
            await pending

        _print_deck(controller)
        return 1 if controller.error else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ensemble-sync", description=__doc__.splitlines()[0])
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the API server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    display = sub.add_parser("display", help="run a display poller for one screen")
    display.add_argument("screen_id", help="1-based screen id")
    display.add_argument("--base-url", default=settings.api_base_url)

    control = sub.add_parser("control", help="drive the live presentation")
    control.add_argument("action")
    control.add_argument("params", nargs="*")
    control.add_argument("--base-url", default=settings.api_base_url)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose or settings.debug)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("ensemble_sync.main:app", host=args.host, port=args.port)
        return 0
    if args.command == "display":
        try:
            return asyncio.run(run_display(args.screen_id, args.base_url))
        except KeyboardInterrupt:
            return 0
    return asyncio.run(run_control(args))


if __name__ == "__main__":
    sys.exit(main())
