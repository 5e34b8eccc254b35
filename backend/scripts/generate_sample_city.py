"""Generate a synthetic street grid and incident batch for local development.

Writes two JSON files usable via GRAPH_PATH and INCIDENTS_PATH:
    python scripts/generate_sample_city.py --out data
"""

import argparse
import json
import math
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Tuple

# Downtown San Francisco, inside the default service area
ORIGIN_LAT = 37.770
ORIGIN_LNG = -122.440

# Block spacing (meters) and scooter speed (m/s)
BLOCK_METERS = 200.0
SPEED_MPS = 5.5

METERS_PER_DEGREE_LAT = 111320.0

# Incident hotspots: (row, col, category, weight)
HOTSPOTS = [
    (3, 4, "theft", 3.0),
    (8, 10, "assault", 2.0),
    (5, 12, "accident", 2.5),
    (12, 3, "vandalism", 1.5),
    (10, 7, "theft", 1.0),
]
CATEGORIES = ["theft", "accident", "assault", "vandalism"]


def node_position(row: int, col: int) -> Tuple[float, float]:
    """(lat, lng) of a grid intersection."""
    meters_per_deg_lng = METERS_PER_DEGREE_LAT * math.cos(math.radians(ORIGIN_LAT))
    return (
        ORIGIN_LAT + row * BLOCK_METERS / METERS_PER_DEGREE_LAT,
        ORIGIN_LNG + col * BLOCK_METERS / meters_per_deg_lng,
    )


def generate_graph(rows: int, cols: int, rng: random.Random) -> Dict[str, List[dict]]:
    """Grid street network; a few one-way streets and slower blocks for variety."""
    nodes = []
    for row in range(rows):
        for col in range(cols):
            lat, lng = node_position(row, col)
            nodes.append({"id": f"n{row}_{col}", "lat": round(lat, 6), "lng": round(lng, 6)})

    edges = []
    for row in range(rows):
        for col in range(cols):
            for d_row, d_col, street in ((0, 1, f"Street {row + 1}"), (1, 0, f"Avenue {col + 1}")):
                r2, c2 = row + d_row, col + d_col
                if r2 >= rows or c2 >= cols:
                    continue
                slowdown = rng.choice([1.0, 1.0, 1.0, 1.3, 1.8])
                edges.append({
                    "id": f"e{row}_{col}_{r2}_{c2}",
                    "from": f"n{row}_{col}",
                    "to": f"n{r2}_{c2}",
                    "base_cost": round(BLOCK_METERS / SPEED_MPS * slowdown, 1),
                    "length_meters": BLOCK_METERS,
                    "bidirectional": rng.random() > 0.08,
                    "name": street,
                })
    return {"nodes": nodes, "edges": edges}


def generate_incidents(
    rows: int, cols: int, count: int, rng: random.Random, now: datetime
) -> List[dict]:
    """Incidents clustered around hotspots plus uniform background noise."""
    total_weight = sum(h[3] for h in HOTSPOTS)
    incidents = []
    for i in range(count):
        if rng.random() < 0.7:
            pick = rng.uniform(0, total_weight)
            for row, col, category, weight in HOTSPOTS:
                pick -= weight
                if pick <= 0:
                    break
            row = min(max(row + rng.gauss(0, 0.6), 0), rows - 1)
            col = min(max(col + rng.gauss(0, 0.6), 0), cols - 1)
        else:
            row, col = rng.uniform(0, rows - 1), rng.uniform(0, cols - 1)
            category = rng.choice(CATEGORIES)

        lat, lng = node_position(row, col)
        age = timedelta(hours=rng.expovariate(1 / (24 * 60)))
        incidents.append({
            "id": f"sample-{i:05d}",
            "category": category,
            "lat": round(lat, 6),
            "lng": round(lng, 6),
            "timestamp": (now - age).isoformat(),
            "severity": round(rng.betavariate(2, 3), 3),
        })
    return incidents


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--out", default="data", help="Output directory")
    parser.add_argument("--rows", type=int, default=15)
    parser.add_argument("--cols", type=int, default=15)
    parser.add_argument("--incidents", type=int, default=800)
    parser.add_argument("--seed", type=int, default=7)
    args = parser.parse_args()

    rng = random.Random(args.seed)
    out = Path(args.out)
    out.mkdir(parents=True, exist_ok=True)

    print(f"Generating {args.rows}x{args.cols} street grid...")
    graph = generate_graph(args.rows, args.cols, rng)
    with open(out / "graph.json", "w") as f:
        json.dump(graph, f)
    print(f"Graph saved: {out / 'graph.json'} ({len(graph['nodes'])} nodes, {len(graph['edges'])} edges)")

    print(f"Generating {args.incidents} incidents...")
    incidents = generate_incidents(
        args.rows, args.cols, args.incidents, rng, datetime.now(timezone.utc)
    )
    with open(out / "incidents.json", "w") as f:
        json.dump({"incidents": incidents}, f)
    print(f"Incidents saved: {out / 'incidents.json'}")

    print("\nTo use them:")
    print(f"  GRAPH_PATH={out / 'graph.json'} INCIDENTS_PATH={out / 'incidents.json'} uvicorn app.main:app")


if __name__ == "__main__":
    main()
