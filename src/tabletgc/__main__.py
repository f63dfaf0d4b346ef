"""
Run one garbage collection pass against a storage volume.

    python -m tabletgc /data/accumulo
    python -m tabletgc accumulo --safe-mode      (with TABLETGC_STORAGE_TYPE=s3)
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from .algorithm import GarbageCollectionAlgorithm
from .config import GCConfig
from .errors import GarbageCollectionError
from .logging_config import TabletGCLogger, get_logger
from .storage_backend import create_storage_backend
from .storage_environment import StorageGCEnvironment

logger = get_logger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point when module is executed directly"""
    parser = argparse.ArgumentParser(
        prog="tabletgc",
        description="Delete unreferenced tablet files and directories from a volume.",
    )
    parser.add_argument("base_path", help="volume base directory (local path or S3 prefix)")
    parser.add_argument("--safe-mode", action="store_true", help="log deletions without performing them")
    parser.add_argument("-v", "--verbose", action="store_true", help="log every candidate decision")
    args = parser.parse_args(argv)

    if args.verbose:
        TabletGCLogger.set_level(logging.DEBUG)

    try:
        config = GCConfig.from_env()
    except ValueError as e:
        parser.error(str(e))

    if args.safe_mode:
        config = replace(config, safe_mode=True)

    try:
        storage = create_storage_backend(args.base_path)
    except ValueError as e:
        parser.error(str(e))
    env = StorageGCEnvironment(storage, config)

    try:
        stats = GarbageCollectionAlgorithm(config).collect(env)
    except GarbageCollectionError as e:
        print(f"Garbage collection failed: {e}", file=sys.stderr)
        return 1

    print(json.dumps(stats.as_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
