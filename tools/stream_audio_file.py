"""
Stream a recorded consultation through a running relay.

    pip install -e .
    python tools/stream_audio_file.py consult.webm --url http://localhost:5005 --document

Prints transcript finals and fact counts as they arrive, then the grouped
facts, credits and (optionally) a generated SOAP note.
"""

import argparse
import asyncio
from pathlib import Path

from client.session_state import ClientSessionState
from client.stream_client import AmbientStreamClient
from documents.models import render_document_text


def _print_message(msg, state: ClientSessionState) -> None:
    msg_type = msg.get("type")
    if msg_type == "transcript" and msg["data"].get("isFinal"):
        print(f"[{state.formatted_duration()}] {msg['data'].get('text', '')}")
    elif msg_type == "facts":
        print(f"  facts: {len(state.facts)} visible")
    elif msg_type in ("session_started", "CONFIG_ACCEPTED", "ended"):
        print(f"-- {msg_type}")
    elif msg_type == "error":
        print(f"!! {msg.get('message')}")


async def main(args: argparse.Namespace) -> None:
    audio = Path(args.audio).read_bytes()
    client = AmbientStreamClient(
        base_url=args.url,
        chunk_size=args.chunk_size,
        chunk_interval_s=args.interval,
        on_message=_print_message,
    )

    state = await client.stream_audio(audio)

    print(f"\ninteraction: {state.interaction_id}")
    for group, facts in state.grouped_facts().items():
        print(f"\n{group}")
        for fact in facts:
            print(f"  - {fact.text}")
    if state.credits is not None:
        print(f"\ncredits consumed: ${state.credits:.6f} (USD)")

    if args.document and state.facts:
        document = await client.request_document(template_key=args.template)
        print("\n" + render_document_text(document))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("audio", help="encoded audio file (e.g. webm/opus)")
    parser.add_argument("--url", default="http://localhost:5005")
    parser.add_argument("--chunk-size", type=int, default=16_000)
    parser.add_argument("--interval", type=float, default=0.5,
                        help="seconds between chunks (0 = as fast as possible)")
    parser.add_argument("--document", action="store_true",
                        help="generate a document from the facts afterwards")
    parser.add_argument("--template", default="corti-soap")
    asyncio.run(main(parser.parse_args()))
