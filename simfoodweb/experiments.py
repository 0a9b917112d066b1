#!/usr/bin/env python3
"""
experiments.py

Parameter sweep over functional response, Hill exponent, interference and
rewiring rule, one joblib task per configuration.
"""

import os
from joblib import Parallel, delayed
import pandas as pd

from simfoodweb.config import ModelConfig
from simfoodweb.model import run_experiments


def _run_single(config: dict, outdir: str = None) -> pd.DataFrame:
    """
    Run one sweep configuration and, with `outdir`, save its metrics as CSV.
    """
    runs        = config["runs"]
    S           = config["S"]
    connectance = config["connectance"]
    seed        = config.get("seed")
    model_conf  = ModelConfig(**config.get("model", {}))

    df = run_experiments(
        runs=runs,
        S=S,
        connectance=connectance,
        config=model_conf,
        temperature_scaled=config.get("temperature_scaled", False),
        seed=seed,
    )
    df["S"] = S
    df["target_connectance"] = connectance
    df["functional_response"] = model_conf.functional_response
    df["h"] = model_conf.h
    df["c"] = model_conf.c
    df["rewire"] = model_conf.rewire.method

    if outdir is not None:
        fname = (
            f"runs{runs}_S{S}_C{connectance}"
            f"_{model_conf.functional_response}_h{model_conf.h}_c{model_conf.c}"
            f"_rw-{model_conf.rewire.method}.csv"
        )
        df.to_csv(os.path.join(outdir, fname), index=False)
    return df


def run_parameter_sweep(param_grid, outdir=None, n_jobs=1) -> pd.DataFrame:
    """Run every configuration of `param_grid` and return all rows with a `config` column."""
    if outdir is not None:
        os.makedirs(outdir, exist_ok=True)
    results = Parallel(n_jobs=n_jobs)(
        delayed(_run_single)(cfg, outdir) for cfg in param_grid
    )
    for i, df in enumerate(results):
        df["config"] = i
    return pd.concat(results, ignore_index=True)


if __name__ == "__main__":
    param_grid = []
    for response in ["classical", "bioenergetic"]:
        for h in [1.0, 1.2, 2.0]:
            for method in ["none", "DO", "DS"]:
                param_grid.append({
                    "runs": 5,
                    "S": 20,
                    "connectance": 0.15,
                    "seed": 42,
                    "model": {
                        "functional_response": response,
                        "h": h,
                        "Z": 10.0,
                        "rewire": {"method": method},
                    },
                })

    results = run_parameter_sweep(param_grid, outdir="results/sweep", n_jobs=4)
    print(f"Saved {len(param_grid)} experiment files to results/sweep ({len(results)} rows).")
