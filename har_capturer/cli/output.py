"""HAR output helpers for the CLI."""

import logging
import sys
from pathlib import Path
from typing import Optional

from ..models.har import HarDocument

logger = logging.getLogger(__name__)


def write_document(document: HarDocument, output: Optional[Path] = None, indent: Optional[int] = 2) -> None:
    """Write ``document`` as JSON to ``output``, or to stdout when None."""
    text = document.to_json(indent=indent)
    if output is None:
        sys.stdout.write(text)
        sys.stdout.write('\n')
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text + '\n', encoding='utf-8')
    logger.info(f"HAR written to {output}")


def configure_logging(verbose: bool = False) -> None:
    """Route log records to stderr (DEBUG when verbose, WARNING otherwise)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
        force=True,
    )
