# examples/run_simple.py

import logging
import os

import matplotlib.pyplot as plt

from defi_amm.models.amm_model import AMMModel
from defi_amm.utils.config_parser import load_config


def main():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    # 1. Locate and load the YAML configuration
    script_dir = os.path.dirname(os.path.abspath(__file__))
    config = load_config(os.path.join(script_dir, "config_simple.yaml"))

    # 2. Instantiate the model (pools are seeded with liquidity here)
    model = AMMModel(config)

    # 3. Run the simulation for the configured number of steps
    for _ in range(config["simulation"]["steps"]):
        model.step()

    # 4. Model-level metrics and the swap log
    df = model.datacollector.get_model_vars_dataframe()
    print("\n=== Final model metrics (last 5 steps) ===")
    print(df.tail())

    events = model.events_frame()
    swaps = events[events["event"] == "SwapEvent"] if not events.empty else events
    print(f"\n=== {len(swaps)} swaps executed, {model.metrics['failed_swaps']} rejected ===")

    for pool in model.pools.values():
        print(f"{pool.token_a_id}/{pool.token_b_id}: reserves={pool.get_reserves()} k={pool.get_k()}")

    # 5. Plot k and protocol fees over time
    fig, ax1 = plt.subplots(figsize=(8, 4))
    ax1.plot(df.index, df["Total_K"], label="k", color="tab:blue")
    ax1.set_xlabel("Time Step")
    ax1.set_ylabel("k", color="tab:blue")
    ax1.tick_params(axis="y", labelcolor="tab:blue")

    ax2 = ax1.twinx()
    ax2.plot(df.index, df["Total_Fees"], label="Protocol fees", color="tab:orange", linestyle="--")
    ax2.set_ylabel("Protocol fees", color="tab:orange")
    ax2.tick_params(axis="y", labelcolor="tab:orange")

    fig.suptitle("Constant Product and Protocol Fees Over Time")
    fig.tight_layout()
    fig.legend(loc="upper left")
    plt.show()


if __name__ == "__main__":
    main()
