"""Setup script for DataPlug."""
from setuptools import setup, find_namespace_packages

with open("README.md", "r", encoding="utf-8") as fh:
  long_description = fh.read()

setup(
  name="dataplug",
  version="0.1.0",
  author="DataPlug Contributors",
  description="Directory, usage counters and connectivity checks for public WebSocket data streams",
  long_description=long_description,
  long_description_content_type="text/markdown",
  packages=find_namespace_packages(include=["apps", "apps.*", "connectors"]),
  py_modules=["dataplug_cli", "dataplug_auth"],
  python_requires=">=3.11",
  install_requires=[
    "fastapi>=0.110.0",
    "uvicorn>=0.27.0",
    "pydantic>=2.5.0",
    "supabase>=2.3.0",
    "httpx>=0.25.0",
    "websockets>=12.0",
    "rich>=13.0.0",
  ],
  extras_require={
    "test": [
      "pytest>=7.4.0",
      "pytest-asyncio>=0.23.0",
    ],
  },
  entry_points={
    "console_scripts": [
      "dataplug=dataplug_cli:main",
    ],
  },
  classifiers=[
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Topic :: Internet :: WWW/HTTP",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
  ],
)
