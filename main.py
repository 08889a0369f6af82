"""
Entry point: run the progress API or watch a job's progress from the terminal.
"""
import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

# Load `.env` before any module reads its config.
load_dotenv(override=True)

from client.channel import PROGRESS_WS_URL  # noqa: E402
from client.dialog import ProgressDialog  # noqa: E402
from core.progress.state import COMPLETED  # noqa: E402

PORT = int(os.getenv("PORT", "5001"))

log = logging.getLogger("main")


def _print_dialog(dialog: ProgressDialog) -> None:
    lines = dialog.render()
    if lines:
        print(" | ".join(lines), flush=True)


async def watch(job_id: str, url: str, token: str | None, timeout: float | None) -> int:
    """Show progress until the job finishes. Exit code 0 on completion, 1 on failure, 2 otherwise."""
    dialog = ProgressDialog(job_id, url=url, token=token, on_change=_print_dialog)
    await dialog.show()
    try:
        state = await dialog.wait_terminal(timeout=timeout)
    finally:
        await dialog.close()

    if state is None or not state.is_terminal:
        print("No result received for job", job_id, file=sys.stderr)
        return 2
    return 0 if state.status == COMPLETED else 1


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("app.api:app", host=host, port=port)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Scraping progress notifier")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_p = sub.add_parser("serve", help="Run the progress API and socket server")
    serve_p.add_argument("--host", default="0.0.0.0")
    serve_p.add_argument("--port", type=int, default=PORT)

    watch_p = sub.add_parser("watch", help="Watch one job's scraping progress")
    watch_p.add_argument("job_id")
    watch_p.add_argument("--url", default=PROGRESS_WS_URL)
    watch_p.add_argument("--token", default=os.getenv("PROGRESS_TOKEN"))
    watch_p.add_argument("--timeout", type=float, default=None, help="Give up after N seconds")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "serve":
        serve(args.host, args.port)
        return 0
    return asyncio.run(watch(args.job_id, args.url, args.token, args.timeout))


if __name__ == "__main__":
    sys.exit(main())
