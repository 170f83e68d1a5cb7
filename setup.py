"""Setup configuration for VoiceWarden."""

from setuptools import setup, find_packages

setup(
    name="voicewarden",
    version="0.0.1",
    description="Voice room moderation automation for Discord",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord",
        "aiosqlite",
        "PyYAML",
        "python-dotenv",
        "prompt_toolkit",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "voicewarden=voicewarden.main:main",
        ],
    },
)
