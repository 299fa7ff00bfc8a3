#!/usr/bin/env python3
"""
Run one digest pass with configuration taken from the environment.
"""

# Set this environment variable to avoid HuggingFace tokenizers warnings
import os
os.environ["TOKENIZERS_PARALLELISM"] = "false"

import logging
import sys

from common.config import PipelineConfig, get_env_var
from common.errors import BatchCancelledError, ConfigurationError
from common.logging import configure_logging
from reader.base_reader import DigestReader
from reader.sources import SourceManager
from storage.sql_store import SQLStore

logger = logging.getLogger(__name__)


def main() -> int:
    configure_logging(
        level=getattr(logging, get_env_var("LOG_LEVEL", "INFO").upper(), logging.INFO),
        log_file=get_env_var("LOG_FILE"),
        console=True,
    )

    try:
        config = PipelineConfig.from_env()
        config.validate(require_generator=False)
        store = SQLStore(config.database_url)
        store.ping()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    seeded = SourceManager(store).seed_default_themes()
    if seeded:
        logger.info(f"Installed {seeded} default themes")

    reader = DigestReader.from_config(config, store)
    try:
        result = reader.run()
    except BatchCancelledError as e:
        logger.error(f"Pipeline cancelled: {e.reason}")
        if e.partial is not None:
            logger.info(f"Partial result: {e.partial.summary()}")
        return 1
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    logger.info(f"Pass finished: {result.summary()}")
    for stage, seconds in result.timings.items():
        logger.info(f"  {stage}: {seconds:.2f}s")
    for error in result.errors:
        logger.warning(f"  error: {error}")
    if result.digest is not None:
        logger.info(f"Digest: {result.digest.title} - {result.digest.tldr}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
