#!/usr/bin/env python3
"""
Run the learning engine's heartbeat against a synthetic engagement stream.
Useful for watching sync passes and snapshots in the logs.
"""

import argparse
import sys
import time

import numpy as np

from paramsync.core.config import LearningConfig, get_embedding_dimension, validate_learning_config
from paramsync.core.fault_tolerance import FaultTolerantSync
from paramsync.core.features import DENSE_FEATURE_NAMES, FeatureVector
from paramsync.core.heartbeat import Heartbeat
from paramsync.core.learning import RealTimeLearningSystem
from paramsync.vector.store import InMemoryEmbeddingStore
from util.logging import logger

ENGAGEMENT_TYPES = ["view", "view", "view", "reaction", "reply", "renote", "follow", "bookmark"]
TOPICS = ["sports", "music", "tech", "art", "news", "games"]


def synthetic_features(rng: np.random.Generator, users: int, authors: int) -> FeatureVector:
    """Draw a random feature vector over a small population."""
    dense = {name: float(rng.random()) for name in DENSE_FEATURE_NAMES}
    topic_count = int(rng.integers(0, 3))
    return FeatureVector(
        user_id=f"u{rng.integers(users)}",
        author_id=f"a{rng.integers(authors)}",
        content_topics=[str(t) for t in rng.choice(TOPICS, size=topic_count, replace=False)],
        **dense
    )


def seed_store(store: InMemoryEmbeddingStore, users: int, authors: int):
    for i in range(users):
        store.get_or_create_embedding("user", f"u{i}")
    for i in range(authors):
        store.get_or_create_embedding("author", f"a{i}")
    for topic in TOPICS:
        store.get_or_create_embedding("topic", topic)


def main():
    """Main entry point for heartbeat script."""
    parser = argparse.ArgumentParser(description="Drive the online learning engine with synthetic engagements")
    parser.add_argument("--duration", type=float, default=30.0, help="Seconds to run")
    parser.add_argument("--rate", type=float, default=20.0, help="Engagements per second")
    parser.add_argument("--sync-interval-ms", type=int, default=5000)
    parser.add_argument("--snapshot-interval-ms", type=int, default=15000)
    parser.add_argument("--users", type=int, default=50)
    parser.add_argument("--authors", type=int, default=10)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    issues = validate_learning_config()
    if issues:
        logger.error(f"Configuration invalid: {issues}")
        sys.exit(1)

    rng = np.random.default_rng(args.seed)
    store = InMemoryEmbeddingStore(dimension=get_embedding_dimension(), rng=rng)
    seed_store(store, args.users, args.authors)

    config = LearningConfig(
        sync_interval_ms=args.sync_interval_ms,
        snapshot_interval_ms=args.snapshot_interval_ms
    )
    heartbeat = Heartbeat()
    engine = RealTimeLearningSystem(store, config=config, heartbeat=heartbeat, rng=rng)

    try:
        heartbeat.start()
        deadline = time.monotonic() + args.duration
        while time.monotonic() < deadline:
            engine.record_engagement(
                synthetic_features(rng, args.users, args.authors),
                str(rng.choice(ENGAGEMENT_TYPES))
            )
            time.sleep(1 / args.rate)

        # Final pass so the last engagements are pushed
        operation = FaultTolerantSync(engine).perform_incremental_sync()
        logger.info(f"Final sync: {operation.to_dict()}")
        logger.info(f"Model weights: {engine.get_model_weights()}")

    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    except Exception as e:
        logger.error(f"Critical error: {e}")
        sys.exit(1)
    finally:
        heartbeat.stop()
        engine.destroy()


if __name__ == "__main__":
    main()
