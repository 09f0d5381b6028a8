from setuptools import setup, find_packages

setup(
    name="trialpower",
    version="0.1.0",
    packages=find_packages(include=["trialpower", "trialpower.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "statsmodels",
        "joblib",
    ],
    extras_require={
        "progress": ["tqdm"],
        "test": ["pytest"],
    },
    description="Monte Carlo power analysis for trial-level accuracy and latency experiments",
)
