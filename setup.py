"""Setup script for HomeCal, household calendar reminders and ICS feeds."""

import os
from pathlib import Path

from setuptools import find_packages, setup
from setuptools.command.develop import develop
from setuptools.command.install import install


def post_install_setup():
    """Create the configuration directory and show setup guidance."""
    try:
        config_dir = Path.home() / ".config" / "homecal"
        config_dir.mkdir(parents=True, exist_ok=True)
        if hasattr(os, "chmod"):
            os.chmod(config_dir, 0o755)

        config_file = config_dir / "homecal.yaml"
        if not config_file.exists():
            print("\n" + "=" * 60)
            print("HomeCal Installation Complete")
            print("=" * 60)
            print(f"Configuration directory: {config_dir}")
            print("\nNext Steps:")
            print(f"1. Create {config_file} (or point HOMECAL_CONFIG at one)")
            print("2. Run 'homecal serve --data-file household.yaml'")
            print("3. Run 'homecal --help' to see all available options")
            print("=" * 60)

    except Exception as e:
        print(f"Warning: Post-install setup failed: {e}")
        print("You may need to create the configuration directory manually.")


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

# Split requirements.txt into runtime and test dependencies
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
test_requirements = []

if requirements_file.exists():
    for line in requirements_file.read_text().strip().split("\n"):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "pytest" in line:
            test_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="homecal",
    version="0.1.0",
    description="Household calendar reminders and subscribable ICS feeds",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="HomeCal Team",
    packages=find_packages(include=["homecal", "homecal.*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        "test": test_requirements,
        "dev": test_requirements
        + [
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Web Environment",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
        "Framework :: AsyncIO",
    ],
    keywords="calendar ics rrule reminders household aiohttp",
    entry_points={
        "console_scripts": [
            "homecal=homecal.__main__:main",
        ],
    },
    cmdclass={
        "install": PostInstallCommand,
        "develop": PostDevelopCommand,
    },
    zip_safe=False,
)
