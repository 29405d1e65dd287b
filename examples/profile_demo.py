"""
Polygon Profile Demo for poly-profile.

This example demonstrates filling a ProfileAggregator over an irregular
partition of the plane and combining shards filled by separate worker
processes.
"""

import json
import logging
import random
from concurrent.futures import ProcessPoolExecutor

from poly_profile import ErrorMode, ProfileAggregator

# A small irregular partition of [0, 10] x [0, 10]:
#   bin 1 - the triangle below the diagonal y = x
#   bin 2 - the part above the diagonal with x < 5
#   bin 3 - the part above the diagonal with x >= 5
DOMAIN = (0.0, 10.0, 0.0, 10.0)
NUM_BINS = 3


def triangle_lookup(x, y):
    """Return the bins containing (x, y)."""
    if not (0 <= x <= 10 and 0 <= y <= 10):
        return []
    if y < x:
        return [1]
    return [2] if x < 5 else [3]


def make_profile():
    profile = ProfileAggregator(*DOMAIN, lookup=triangle_lookup)
    profile.add_bins(NUM_BINS)
    return profile


def measurement(x, y, rng):
    """Toy field: a gradient plus noise."""
    return x + 2 * y + rng.gauss(0, 1)


def fill_shard(seed):
    """Fill one shard in a worker and ship it back as a snapshot."""
    rng = random.Random(seed)
    profile = make_profile()
    for _ in range(20000):
        x, y = rng.uniform(-1, 11), rng.uniform(-1, 11)
        profile.fill(x, y, measurement(x, y, rng))
    return profile.serialize()


def demonstrate_basic_profile():
    """Fill a profile in one process and inspect the bins."""
    print("\n=== Basic Polygon Profile Demo ===")

    rng = random.Random(42)
    profile = make_profile()

    for _ in range(10000):
        x, y = rng.uniform(-1, 11), rng.uniform(-1, 11)
        profile.fill(x, y, measurement(x, y, rng))

    print(f"Samples filled: {profile.items_processed}")
    print(f"Samples in bins: {profile.entries}")
    for n in range(1, profile.num_bins + 1):
        print(
            f"  Bin {n}: entries={profile.get_bin_entries(n):.0f} "
            f"average={profile.get_bin_average(n):.2f} "
            f"spread={profile.get_bin_error(n):.2f}"
        )

    profile.set_error_mode(ErrorMode.MEAN_ERROR)
    profile.set_display_to_error()
    print("Error on the mean per bin:")
    for n in range(1, profile.num_bins + 1):
        print(f"  Bin {n}: {profile.get_bin_content(n):.4f}")

    print("\nOverflow regions:")
    print(profile.format_overflow_regions())


def demonstrate_sharded_merge():
    """Fill shards in parallel and merge them into one profile."""
    print("\n=== Sharded Merge Demo ===")

    with ProcessPoolExecutor(max_workers=4) as pool:
        snapshots = list(pool.map(fill_shard, range(4)))

    shards = [
        ProfileAggregator.deserialize(s, lookup=triangle_lookup) for s in snapshots
    ]
    merged = make_profile()
    if not merged.merge(shards):
        print("Merge failed")
        return

    print(f"Merged {len(shards)} shards, {merged.items_processed} samples")
    for n in range(1, merged.num_bins + 1):
        print(f"  Bin {n}: average={merged.get_bin_content(n):.2f}")

    stats = merged.get_stats()
    print("Global mean x/y/value: "
          f"{merged.get_mean(1):.2f} / {merged.get_mean(2):.2f} / {merged.get_mean(3):.2f}")
    print(json.dumps({k: stats[k] for k in ("num_bins", "entries", "sumw")}))

    # A shard with a different partition is refused
    mismatched = ProfileAggregator(*DOMAIN, lookup=triangle_lookup)
    mismatched.add_bins(NUM_BINS + 1)
    print(f"Merge with mismatched partition succeeded: {merged.merge([mismatched])}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    demonstrate_basic_profile()
    demonstrate_sharded_merge()
