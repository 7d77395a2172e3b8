"""
innerparts build configuration

Usage:
    pip install -e .            # Runtime install
    pip install -e ".[test]"    # With the test toolchain
"""

from setuptools import setup, find_packages

# ── Runtime ─────────────────────────────────────────────────────────────────
INSTALL_REQUIRES = [
    "loguru>=0.7",
    "pydantic>=2.0",
    "pydantic-settings>=2.0",
    "aiosqlite>=0.19",
]

# ── Test toolchain ──────────────────────────────────────────────────────────
TEST_REQUIRES = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

setup(
    name="innerparts",
    version="0.1.0",
    description="Persona orchestration engine for a real-time writing companion",
    packages=find_packages(include=["innerparts", "innerparts.*"]),
    install_requires=INSTALL_REQUIRES,
    extras_require={"test": TEST_REQUIRES},
    python_requires=">=3.11",
)
