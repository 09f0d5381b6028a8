"""
Power Sweep Example
===================

This example compares analysis approaches across sample sizes and effect
sizes. Cells with the same sample size share simulated subjects and trial
noise, so differences between approaches are not blurred by independent
sampling error.
"""

import trialpower

print("=" * 60)
print("POWER SWEEP EXAMPLE")
print("=" * 60)

sim = trialpower.PowerSimulation()
sim.set_experiments(500)
sim.set_seed(76)

# Use joblib workers for the grid cells
sim.set_parallel(n_jobs=1, n_cell_jobs=4)

result = sim.sweep(
    sample_sizes=[12, 24, 48],
    effect_sizes=[0.0, 0.05, 0.1],
    approaches=[
        "rt ~ condition",
        "log(rt) ~ condition",
        "log(rt) ~ condition + (1|sub_id)",
    ],
    summary="long",
)

# The plain table is a pandas DataFrame
table = result["table"]
print("\nPower by approach at N=24:")
print(table[table["sample_size"] == 24].pivot(index="effect_size", columns="approach", values="power"))

# Raw rows of one cell, e.g. for plotting elsewhere
batch = sim.simulate(n_subjects=12, effect_size=0.1)
print(f"\nSimulated rows for one cell: {len(batch)}")
print(batch.groupby("condition", observed=True)[["acc", "rt"]].mean())
