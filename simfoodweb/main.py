"""
main.py

Command-line entry point for running the bioenergetic food-web model.
Parses arguments, invokes the simulation wrapper, and writes out a CSV.
"""

import argparse
import os
import time

from simfoodweb.config import ModelConfig, RewireConfig
from simfoodweb.simulation import run_simulation


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Simulate niche-model food webs and save community metrics."
    )
    parser.add_argument(
        "--runs", type=int, default=10,
        help="Number of independent replicates to run."
    )
    parser.add_argument(
        "--species", type=int, default=20,
        help="Species richness S of each food web."
    )
    parser.add_argument(
        "--connectance", type=float, default=0.15,
        help="Target connectance of the niche model."
    )
    parser.add_argument(
        "--response", choices=["classical", "bioenergetic"], default="bioenergetic",
        help="Functional response formulation."
    )
    parser.add_argument(
        "--hill", type=float, default=1.0,
        help="Hill exponent h (1 = type II, 2 = type III)."
    )
    parser.add_argument(
        "--interference", type=float, default=0.0,
        help="Predator interference c."
    )
    parser.add_argument(
        "--Z", type=float, default=10.0,
        help="Consumer:resource body-mass ratio."
    )
    parser.add_argument(
        "--temperature", type=float, default=None,
        help="Temperature in Kelvin; switches to temperature-scaled rates."
    )
    parser.add_argument(
        "--rewire", choices=["none", "DO", "DS", "ADBM"], default="none",
        help="Diet rewiring rule applied after extinctions."
    )
    parser.add_argument(
        "--t-stop", type=float, default=500.0,
        help="End of the integration window."
    )
    parser.add_argument(
        "--interval", type=float, default=0.25,
        help="Spacing of the recorded biomass snapshots."
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Seed of the random generator."
    )
    parser.add_argument(
        "--outdir", type=str, default="results",
        help="Directory to save output CSV files."
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    os.makedirs(args.outdir, exist_ok=True)

    config = ModelConfig(
        functional_response=args.response,
        h=args.hill,
        c=args.interference,
        Z=args.Z,
        temperature=args.temperature if args.temperature is not None else 293.15,
        t_stop=args.t_stop,
        sample_interval=args.interval,
        rewire=RewireConfig(method=args.rewire),
    )

    print(f"Starting food-web simulation with {args.runs} runs of S={args.species}...")
    t0 = time.time()

    metrics_df = run_simulation(
        runs=args.runs,
        S=args.species,
        connectance=args.connectance,
        config=config,
        temperature_scaled=args.temperature is not None,
        seed=args.seed,
    )

    elapsed = time.time() - t0
    print(f"Simulation completed in {elapsed:.1f} seconds.")

    metrics_path = os.path.join(args.outdir, "community_metrics.csv")
    metrics_df.to_csv(metrics_path, index=False)
    print(f"Community metrics saved to {metrics_path}")


if __name__ == "__main__":
    main()
