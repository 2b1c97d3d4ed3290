from setuptools import setup, find_packages

# Read requirements
with open("requirements/base.txt") as f:
    base_requirements = [line for line in f.read().splitlines() if line and not line.startswith("#")]

setup(
    name="stepwise-bdd",
    version="0.1.0",
    author="stepwise Contributors",
    description="Step matching and invocation engine for BDD feature files",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Testing",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.11",
    install_requires=base_requirements,
    extras_require={
        "test": ["pytest"],
        "dev": ["pytest", "black", "flake8", "mypy"],
    },
    entry_points={
        "console_scripts": [
            "stepwise=stepwise.cli:main",
        ],
    },
)
