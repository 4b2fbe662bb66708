"""
Content build script for the documentation chat assistant.

This script:
1. Resolves the embedding and completion providers
2. Loads every markdown file under the site's content directories
3. Normalizes and chunks each document
4. Embeds the chunks and writes embeddings.json
5. Optionally audits the content and writes content-audit.json

Usage:
    python build_content.py --site-dir ../my-site --out-dir .docs-chat [--mock] [--audit]
"""
import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from config import AUDIT_AI_REVIEW, AUDIT_ENABLED, ENVIRONMENT, OUTPUT_DIR, SITE_DIR
from models.settings import PluginConfig
from services.errors import ConfigurationError
from services.plugin import AuditPlugin, ChatPlugin

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Build the chat corpus (and optional content audit) for a documentation site"
    )
    parser.add_argument(
        "--site-dir",
        default=SITE_DIR,
        help=f"Site root containing docs/ and src/pages/ (default: {SITE_DIR})"
    )
    parser.add_argument(
        "--out-dir",
        default=OUTPUT_DIR,
        help=f"Directory for embeddings.json and content-audit.json (default: {OUTPUT_DIR})"
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the deterministic mock providers (no network, no API key)"
    )
    parser.add_argument(
        "--audit",
        action="store_true",
        default=AUDIT_ENABLED,
        help="Also write content-audit.json"
    )
    parser.add_argument(
        "--ai-review",
        action="store_true",
        default=AUDIT_AI_REVIEW,
        help="Run the AI review as part of the audit"
    )
    return parser.parse_args(argv)


async def build(args: argparse.Namespace) -> None:
    """Run the chat pipeline (and the audit when requested) once."""
    plugin_config = PluginConfig.from_env()
    if args.mock:
        plugin_config = replace(plugin_config, mock_mode=True)

    logger.info("=" * 60)
    logger.info(f"Building content for {args.site_dir}")
    logger.info("=" * 60)

    chat_plugin = ChatPlugin(plugin_config, args.site_dir, environment=ENVIRONMENT)
    content = await chat_plugin.load_content()
    path = await chat_plugin.content_loaded(content, args.out_dir)
    logger.info(f"✓ {content.total_chunks} chunks written to {path}")

    if args.audit:
        audit_plugin = AuditPlugin(args.site_dir, chat_plugin.ai_service, ai_review=args.ai_review)
        audit = await audit_plugin.load_content()
        path = await audit_plugin.content_loaded(audit, args.out_dir)
        logger.info(f"✓ {audit.summary.total_issues} issues in {audit.summary.total_files} files written to {path}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main build process; returns the process exit code."""
    args = parse_args(argv)
    try:
        asyncio.run(build(args))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.error.message}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Build interrupted by user")
        return 1
    logger.info("BUILD COMPLETE!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
