from setuptools import setup, find_packages

setup(
    name="ab-experimentation-engine",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "pandas>=1.5.0",
        "numpy>=1.21.0",
        "scipy>=1.7.0",
        "Jinja2>=3.0.0",
        "flask>=2.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
)
