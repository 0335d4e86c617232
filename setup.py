from setuptools import setup, find_packages

setup(
    name="venuesync",
    version="1.0.0",
    description="Reconnecting orderbook streams, rate-limited venue requests and a periodic strategy engine for prediction markets",
    python_requires=">=3.10",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        line.strip()
        for line in open("requirements.txt")
        if line.strip() and not line.startswith("#")
    ],
    extras_require={
        "dev": [
            line.strip()
            for line in open("requirements-dev.txt")
            if line.strip() and not line.startswith(("#", "-r"))
        ],
    },
)
