from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fp:
    long_description = fp.read()

setup(
    name="instancemc",
    version="1.0.0",
    description="Instancemc is a module that installs Minecraft versions into named instances and builds "
                "their launch command, with a CLI on top of it.",
    author="instancemc contributors",
    packages=["instancemc", "instancemc.cli"],
    install_requires=["certifi"],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["instancemc = instancemc.cli:main"]},
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="GPL-3.0",
    python_requires=">=3.8",
)
