#!/usr/bin/env python3
"""Stream one research query to the console."""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from core.debug_log import dbg
from core.runner import SessionRunner
from core.state import GeoLocation, SearchOptions, Session, SessionStatus
from core.store import SessionStore
from tools import register_default_providers, registered_names


def setup_environment():
    """Load environment variables from .env if it exists."""
    if Path(".env").exists():
        load_dotenv()
        print("[INFO] Loaded environment from .env file")


async def run_search(query: str, options: SearchOptions, save: bool = False) -> bool:
    """Run one session, printing new log lines as they arrive."""
    store = SessionStore()
    runner = SessionRunner(store)

    print("=" * 60)
    print("OMNISEARCH")
    print("=" * 60)
    print(f"Query: {query}")
    print(f"Persona: {options.persona} | Deep: {options.autonomous} | Maps: {options.use_maps}")
    print("-" * 60)

    try:
        handle = runner.submit(query, options)
    except KeyError as e:
        print(f"[ERROR] {e}")
        print(f"Available providers: {', '.join(registered_names()) or 'none'}")
        return False

    printed_logs = 0
    layout = None
    session: Session = store.get(handle.session_id)
    async for session in store.watch(handle.session_id):
        if session.layout != layout:
            layout = session.layout
            print(f"  [LAYOUT] {layout.value}")
        for line in session.log_lines[printed_logs:]:
            print(f"  [LOG] {line}")
        printed_logs = len(session.log_lines)

    await handle.wait()
    session = store.get(handle.session_id)
    tasks = store.tasks(session.id)

    print()
    print("=" * 60)
    print(f"RESULT ({session.status.value.upper()})")
    print("=" * 60)
    if session.error:
        print(f"[ERROR] {session.error.category}: {session.error.message}")

    if tasks:
        print("\nMISSION TASKS")
        print("-" * 40)
        for task in tasks:
            print(f"[{task.status.value:<11}] {task.id}: {task.description}")

    if session.report.strip():
        print("\nREPORT")
        print("-" * 40)
        try:
            print(session.report.strip())
        except UnicodeEncodeError:
            print(session.report.strip().encode('ascii', 'replace').decode('ascii'))

    if session.has_payload:
        print("\nSTRUCTURED PAYLOAD")
        print("-" * 40)
        print(json.dumps(session.structured_payload, indent=2, ensure_ascii=False))

    if session.references:
        print("\nSOURCES")
        print("-" * 40)
        for i, ref in enumerate(session.references, 1):
            print(f"{i}. [{ref.kind.value}] {ref.title or 'Untitled'} {ref.uri}")

    if save and session.report.strip():
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"search_{session.id}_{timestamp}.md"
        with open(filename, 'w', encoding='utf-8') as f:
            f.write(f"# {query}\n")
            f.write(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n\n")
            f.write(session.report.strip() + "\n")
            if session.references:
                f.write("\n## Sources\n")
                for ref in session.references:
                    f.write(f"- {ref.title or ref.uri} [{ref.uri}]\n")
        print(f"\n[INFO] Report saved to: {filename}")

    if dbg.is_enabled():
        dbg.flush_to_file(f"debug_{session.id}.json")

    return session.status == SessionStatus.COMPLETED


def main():
    parser = argparse.ArgumentParser(description='Stream a research query to the console')
    parser.add_argument('query', help='Research query')
    parser.add_argument('--model', '-m', default='flash', help="'pro', 'flash' or a model id")
    parser.add_argument('--persona', '-p', default='general',
                        choices=['general', 'financial', 'technical', 'market'])
    parser.add_argument('--fast', action='store_true', help='Disable extended reasoning')
    parser.add_argument('--maps', action='store_true', help='Force the maps-capable model')
    parser.add_argument('--location', help='Latitude,longitude for local queries')
    parser.add_argument('--provider', help='Provider name (default from config)')
    parser.add_argument('--save', action='store_true', help='Save the report as markdown')

    args = parser.parse_args()

    setup_environment()
    dbg.maybe_enable_from_env()
    register_default_providers(silent=True)

    location = None
    if args.location:
        try:
            lat, lng = (float(v) for v in args.location.split(","))
            location = GeoLocation(latitude=lat, longitude=lng)
        except ValueError:
            print("[ERROR] --location must look like 37.77,-122.42")
            sys.exit(2)

    options = SearchOptions(
        model=args.model,
        autonomous=not args.fast,
        persona=args.persona,
        use_maps=args.maps,
        location=location,
        provider=args.provider,
    )

    success = asyncio.run(run_search(args.query, options, save=args.save))
    if not success:
        sys.exit(1)


if __name__ == "__main__":
    main()
