"""Setup script for the maintdeck maintenance panel controller."""

import os
from pathlib import Path

from setuptools import find_packages, setup
from setuptools.command.develop import develop
from setuptools.command.install import install


def post_install_setup():
    """Create the configuration directory and show setup guidance."""
    try:
        config_dir = Path.home() / ".config" / "maintdeck"
        config_dir.mkdir(parents=True, exist_ok=True)
        if hasattr(os, "chmod"):
            os.chmod(config_dir, 0o755)

        config_file = config_dir / "maintdeck.yaml"
        if not config_file.exists():
            print("\n" + "=" * 60)
            print("maintdeck installation complete")
            print("=" * 60)
            print(f"Configuration directory: {config_dir}")
            print("\nNext steps:")
            print("1. Copy config/maintdeck.yaml.example to the configuration directory")
            print("2. Run 'maintdeck --config <path>' with a Stream Deck attached")
            print("3. Run 'maintdeck --help' to see all available options")
            print("=" * 60)

    except Exception as e:
        print(f"Warning: Post-install setup failed: {e}")
        print("You may need to create configuration directories manually.")


class PostInstallCommand(install):
    """Custom install command with post-install setup."""

    def run(self):
        install.run(self)
        post_install_setup()


class PostDevelopCommand(develop):
    """Custom develop command with post-install setup."""

    def run(self):
        develop.run(self)
        post_install_setup()


readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
dev_requirements = []

if requirements_file.exists():
    for line in requirements_file.read_text().strip().split("\n"):
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        # Test tooling goes to the dev extra
        if "pytest" in line:
            dev_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="maintdeck",
    version="0.1.0",
    description="Maintenance countdown controller for Stream Deck panels",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="maintdeck developers",
    packages=find_packages(exclude=["tests*", "docs*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        "dev": dev_requirements,
        "test": dev_requirements,
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Hardware",
        "Framework :: AsyncIO",
    ],
    keywords="streamdeck maintenance countdown raspberry-pi async",
    entry_points={
        "console_scripts": [
            "maintdeck=maintdeck.__main__:main",
        ],
    },
    data_files=[
        ("share/maintdeck/config", ["config/maintdeck.yaml.example"]),
    ],
    cmdclass={
        "install": PostInstallCommand,
        "develop": PostDevelopCommand,
    },
    zip_safe=False,
    platforms=["linux"],
)
