"""Setup script for the DialAI calling agent."""

from setuptools import setup, find_packages

setup(
    name="dialai",
    version="1.0.0",
    description="AI sales calling agent with rate-limited generation and voice I/O",
    author="Your Name",
    packages=find_packages(include=['dialai', 'dialai.*', 'mocks', 'mocks.*']),
    python_requires=">=3.11",
    install_requires=[
        "python-dotenv>=1.0.0",
        "google-generativeai>=0.3.0",
        "google-api-core>=2.11.0",
        "elevenlabs>=2.0.0",
        "pygame>=2.5.0",
        "structlog>=23.0.0",
        "click>=8.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "dialai=dialai.cli.main:cli",
        ],
    },
)
