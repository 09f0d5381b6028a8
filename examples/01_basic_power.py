"""
Basic Power Analysis Example
============================

This example estimates the power of a reaction-time experiment with three
conditions. Each subject completes 16 trials per condition; we ask how
often a fixed-effects regression detects that condition B is faster than
condition A.
"""

import trialpower

print("=" * 60)
print("BASIC POWER ANALYSIS EXAMPLE")
print("=" * 60)

# 1. Choose the analysis fitted to every simulated experiment
sim = trialpower.PowerSimulation("rt ~ condition")

# 2. Describe the conditions: mean accuracy / mean log-latency (log ms)
# A is the reference; B is ~20% faster before the 200 ms floor
sim.set_conditions("A=0.90/5.2, B=0.85/5.0, C=0.80/6.3")
sim.set_contrast("B")

# 3. Design and noise
sim.set_trials(16)
sim.set_subject_sd(accuracy=0.5, latency=0.1)
sim.set_residual_sd(0.3)
sim.set_seed(76)

# 4. Power for 24 subjects with the configured means
print("\n1. CONFIGURED MEANS:")
sim.find_power(n_subjects=24)

# 5. Type I error: the same design with B equal to A
print("\n2. FALSE-POSITIVE RATE:")
sim.find_type1_error(n_subjects=24, summary="long")

# 6. A smaller, explicit effect: B 0.05 log units slower than A
print("\n3. SMALL EFFECT:")
result = sim.find_power(n_subjects=24, effect_size=0.05, return_results=True, print_results=False)
print(f"Power: {100 * result['results']['power']:.1f}%")
print(f"Wrong-sign rate: {100 * result['results']['wrong_sign_rate']:.2f}%")

print("\n" + "=" * 60)
print("INTERPRETATION GUIDE")
print("=" * 60)
print("""
Key takeaways:
- 'power' is the share of experiments with p < alpha for the B contrast
- 'wrong sign' counts significant results pointing the wrong way
- Raw-RT regression pooled over conditions is conservative when one
  condition is much slower (more variable) than the others

Next steps:
- Compare analysis approaches with sweep() (see 02_sweep.py)
- Increase n_subjects or trials if power is too low
""")
