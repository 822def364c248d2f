"""
Command-line entry point.

Indexes a source tree, then runs one repair session for an issue and prints
the progress stream. The index is rebuilt on every run.

Usage:
    python app.py --repo ./myproject --title "Parser crash" \\
        --description "parse('') raises IndexError" --code ./myproject/parser.py
    python app.py --repo ./myproject --title "..." --description "..." --explain
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Ensure the project root is importable
sys.path.insert(0, str(Path(__file__).parent))

from agent.events import SUCCESS  # noqa: E402
from agent.service import CodeFixService  # noqa: E402
from framework.streaming import format_event  # noqa: E402
from llm.router import LLMRouter  # noqa: E402
from retrieval.index import SourceDocument  # noqa: E402

logger = logging.getLogger(__name__)

_DEFAULT_PATTERNS = ("*.py",)
_SKIP_DIRS = {".git", ".venv", "venv", "node_modules", "__pycache__", "build", "dist"}


def load_documents(root: Path, patterns: tuple[str, ...] = _DEFAULT_PATTERNS) -> list[SourceDocument]:
    """Read every matching file under root as a SourceDocument, in sorted order."""
    paths: set[Path] = set()
    for pattern in patterns:
        paths.update(root.rglob(pattern))

    documents = []
    for path in sorted(paths):
        if not path.is_file() or _SKIP_DIRS.intersection(path.relative_to(root).parts):
            continue
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping %s: %s", path, exc)
            continue
        documents.append(SourceDocument(identifier=str(path.relative_to(root)), content=content))
    return documents


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Retrieve relevant code and repair an issue.")
    parser.add_argument("--repo", type=Path, required=True, help="Source tree to index")
    parser.add_argument("--title", required=True, help="Issue title")
    parser.add_argument("--description", required=True, help="Issue description")
    parser.add_argument("--code", type=Path, help="File holding the current code context")
    parser.add_argument("--pattern", action="append", help="Glob of files to index (repeatable)")
    parser.add_argument("--top-k", type=int, default=3, help="Retrieved excerpts per issue")
    parser.add_argument("--max-attempts", type=int, default=5, help="Attempt budget")
    parser.add_argument("--explain", action="store_true", help="Stream an explanation instead of repairing")
    parser.add_argument(
        "--reasoning-effort", choices=["low", "medium", "high"], help="Reasoning effort hint for the model"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


async def _main(args: argparse.Namespace) -> int:
    service = CodeFixService(
        router=LLMRouter(reasoning_effort=args.reasoning_effort),
        max_attempts=args.max_attempts,
        top_k=args.top_k,
    )

    documents = load_documents(args.repo, tuple(args.pattern or _DEFAULT_PATTERNS))
    count = await service.index(documents)
    print(f"Embedding index built successfully ({count} files).", flush=True)

    current_code = args.code.read_text(encoding="utf-8") if args.code else ""

    if args.explain:
        async for fragment in service.explain(args.title, args.description, current_code):
            print(fragment, end="", flush=True)
        print()
        return 0

    succeeded = False
    async for event in service.repair(args.title, args.description, current_code):
        print(format_event(event), flush=True)
        succeeded = succeeded or event.get("type") == SUCCESS
    return 0 if succeeded else 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    return asyncio.run(_main(args))


if __name__ == "__main__":
    sys.exit(main())
