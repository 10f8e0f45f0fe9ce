"""
Command-Line Interface for the News RAG Chat Service

Provides CLI commands for:
- Running the HTTP server
- Article ingestion from a JSON file
- Asking questions within a session
- Viewing session history
- System statistics
- Resetting the vector index
"""

import sys
import asyncio
import argparse
import logging
from pathlib import Path

from .config import get_config
from .main_pipeline import NewsQuerySystem


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity level."""
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, get_config().log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def cmd_serve(args):
    """Handle the serve command."""
    import uvicorn
    from .api.app import create_app

    config = get_config()
    app = create_app(seed_articles_path=args.seed)
    uvicorn.run(
        app,
        host=args.host or config.host,
        port=args.port or config.port,
        log_level='debug' if args.verbose else config.log_level.lower()
    )


async def _ingest(args):
    async with NewsQuerySystem() as system:
        return await system.ingest_file(args.file, show_progress=True)


def cmd_ingest(args):
    """Handle the ingest command."""
    if not Path(args.file).exists():
        print(f"✗ Error: File not found: {args.file}")
        sys.exit(1)

    print(f"Ingesting articles from: {args.file}")
    results = asyncio.run(_ingest(args))

    print(f"\n{'='*60}")
    print("Ingestion Summary:")
    print(f"  Total articles: {results['total']}")
    print(f"  Indexed: {results['ingested']}")
    print(f"  Failed: {results['failed']}")
    print(f"  Processing time: {results['processing_time']:.2f}s")
    print(f"{'='*60}")

    if results['ingested'] == 0 and results['total'] > 0:
        sys.exit(1)


async def _ask(args):
    async with NewsQuerySystem() as system:
        session_id = args.session or system.rag_service.create_session()
        response = await system.rag_service.chat(session_id, args.question)
        return session_id, response


def cmd_ask(args):
    """Handle the ask command."""
    print(f"Question: {args.question}")
    print()

    session_id, response = asyncio.run(_ask(args))

    print("Answer:")
    print(f"{response.answer}")
    print()

    if not args.no_sources and response.sources:
        print("Sources:")
        for i, source in enumerate(response.sources, 1):
            print(f"  [{i}] {source.title}")
            print(f"      {source.link}")
        print()

    if response.degraded:
        print("(Context retrieval failed; answered without news context)")

    print(f"Response time: {response.response_time:.2f}s")
    print(f"Session ID: {session_id}")
    print("(Use this session ID for follow-up questions)")


async def _history(args):
    async with NewsQuerySystem() as system:
        loaded = await system.rag_service.get_history(args.session)
        return loaded.value


def cmd_history(args):
    """Handle the history command."""
    history = asyncio.run(_history(args))

    if not history:
        print("No history found for this session.")
        return

    for turn in history:
        print(f"{turn.role.capitalize()}: {turn.content}")
        print()


async def _stats():
    async with NewsQuerySystem() as system:
        return system.get_stats()


def cmd_stats(args):
    """Handle the stats command."""
    stats = asyncio.run(_stats())

    print("="*60)
    print("System Statistics")
    print("="*60)
    print(f"Total Documents: {stats['total_documents']}")
    print(f"Session Store: {stats['session_store']}")
    print()

    print("Vector Store:")
    vs_stats = stats['vector_store_stats']
    print(f"  Corpus: {vs_stats.get('corpus_name', 'N/A')}")
    print(f"  State: {vs_stats.get('state', 'N/A')}")
    print(f"  Dimension: {vs_stats.get('dimension') or 'N/A'}")
    print(f"  Metric: {vs_stats.get('metric', 'N/A')}")
    print(f"  Index Type: {vs_stats.get('index_type', 'N/A')}")
    print("="*60)


async def _reset():
    async with NewsQuerySystem() as system:
        return await system.reset_index()


def cmd_reset(args):
    """Handle the reset command."""
    if not args.yes:
        print("✗ Refusing to drop the collection without --yes")
        sys.exit(1)

    result = asyncio.run(_reset())
    if result.ok:
        print("✓ Dropped the vector collection")
    else:
        print(f"✗ Failed to drop collection: {result.error}")
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        description='News RAG Chat Service - Conversational question answering over news articles',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the HTTP server, indexing a seed file in the background
  python -m news_rag.cli serve --seed articles.json

  # Ingest articles from a JSON file
  python -m news_rag.cli ingest --file articles.json

  # Ask a question
  python -m news_rag.cli ask "What happened on the coast?"

  # Show a session's history
  python -m news_rag.cli history <session-id>

  # View statistics
  python -m news_rag.cli stats
        """
    )

    # Global arguments
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Serve command
    serve_parser = subparsers.add_parser(
        'serve',
        help='Run the HTTP API server'
    )
    serve_parser.add_argument('--host', help='Bind address (default: HOST from config)')
    serve_parser.add_argument('--port', type=int, help='Port (default: PORT from config)')
    serve_parser.add_argument(
        '--seed',
        help='JSON articles file to ingest at startup (default: SEED_ARTICLES_PATH)'
    )
    serve_parser.set_defaults(func=cmd_serve)

    # Ingest command
    ingest_parser = subparsers.add_parser(
        'ingest',
        help='Ingest articles from a JSON file'
    )
    ingest_parser.add_argument(
        '--file',
        required=True,
        help='JSON file containing a list of articles'
    )
    ingest_parser.set_defaults(func=cmd_ingest)

    # Ask command
    ask_parser = subparsers.add_parser(
        'ask',
        help='Ask a question and get an AI-generated answer'
    )
    ask_parser.add_argument(
        'question',
        help='Question to ask'
    )
    ask_parser.add_argument(
        '--session',
        help='Session ID for multi-turn conversation'
    )
    ask_parser.add_argument(
        '--no-sources',
        action='store_true',
        help='Do not print sources'
    )
    ask_parser.set_defaults(func=cmd_ask)

    # History command
    history_parser = subparsers.add_parser(
        'history',
        help='Show the stored history of a session'
    )
    history_parser.add_argument(
        'session',
        help='Session ID'
    )
    history_parser.set_defaults(func=cmd_history)

    # Stats command
    stats_parser = subparsers.add_parser(
        'stats',
        help='Display system statistics'
    )
    stats_parser.set_defaults(func=cmd_stats)

    # Reset command
    reset_parser = subparsers.add_parser(
        'reset',
        help='Drop the vector collection'
    )
    reset_parser.add_argument(
        '--yes',
        action='store_true',
        help='Confirm dropping all indexed documents'
    )
    reset_parser.set_defaults(func=cmd_reset)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Setup logging
    setup_logging(args.verbose)

    # Execute command
    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"\n✗ Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
