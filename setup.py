"""
/setup.py

Packaging for the chatty log archiver.
"""

import setuptools

with open("requirements.txt", "r", encoding="utf-8") as file:
    requirements = file.read().splitlines()

setuptools.setup(
    name="chatty-archive",
    version="0.0.1",
    description="Parse chatty chat logs into messages with resolved timestamps",
    package_dir={"": "src"},
    packages=setuptools.find_packages(where="src"),
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "chatty-archive = chatty_archive.commands:main",
        ]
    },
)
